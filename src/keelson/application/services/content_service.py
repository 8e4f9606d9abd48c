"""Content service: the query façade over generated content tables.

Lists and fetches items with status filtering, pagination, ordering,
grouping, hierarchy queries and relationship filters, and delegates saves
and deletes to the content writer. Read failures degrade to empty results
instead of raising.
"""

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from keelson.application.services.content_loader import ContentLoader
from keelson.application.services.content_writer import ContentWriter
from keelson.application.services.schema_registry import SchemaRegistry
from keelson.application.services.tag_service import TagService
from keelson.core.config import Settings, get_settings
from keelson.core.exceptions import SchemaMismatchError
from keelson.core.logging import get_logger
from keelson.domain.entities.definition import EntityKind, entity_key
from keelson.domain.entities.field import (
    ArrayField,
    FileField,
    RelationField,
    ScalarField,
    TagsField,
    classify,
)
from keelson.domain.entities.result import ItemListResult, OperationResult, Pagination
from keelson.domain.entities.schema import EntityConfig, GeneratedSchema
from keelson.domain.entities.table import TableSpec
from keelson.domain.services.naming import junction_table_name_for, owner_path_for
from keelson.domain.services.ports import AllowAllAuthorizer, Authorizer, FileStore, QueryPredicate
from keelson.domain.services.value_coercion import sanitize_id
from keelson.infrastructure.persistence.repositories import ContentRepository
from keelson.infrastructure.persistence.table_builder import quote

logger = get_logger(__name__)

# Bound parameter names generated by the query builder
_PARAM_PREFIX = "__kq_p"

_BIND_PATTERN = re.compile(r"(?<![:\w]):(\w+)")

UNCATEGORIZED_GROUP = "uncategorized"
DEFAULT_ORDER_COLUMN = "created_at"


class RelatedFilter(BaseModel):
    """Restrict items to those related to given targets through a field."""

    model_config = ConfigDict(populate_by_name=True)

    field: str
    value: Any = None
    values: list[Any] | None = None

    def target_values(self) -> list[str]:
        raw = self.values if self.values is not None else [self.value]
        return [str(v) for v in raw if v is not None and str(v) != ""]


class QueryOptions(BaseModel):
    """Options of a list query.

    Attribute names are snake_case; camelCase aliases are accepted.
    """

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    status: str | None = "published"
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)
    current_page: int | None = Field(default=None, ge=1, alias="currentPage")
    order_by: str = Field(default=DEFAULT_ORDER_COLUMN, alias="orderBy")
    order: Literal["asc", "desc"] = "desc"
    group_by: str | None = Field(default=None, alias="groupBy")
    parent_id: str | None = Field(default=None, alias="parentId")
    sibling_of: str | None = Field(default=None, alias="siblingOf")
    exclude_current: bool = Field(default=True, alias="excludeCurrent")
    where_related: RelatedFilter | None = Field(default=None, alias="whereRelated")
    include_blocks: bool = Field(default=True, alias="includeBlocks")
    include_breadcrumbs: bool = Field(default=False, alias="includeBreadcrumbs")
    base_url: str | None = Field(default=None, alias="baseUrl")
    access_predicate: QueryPredicate | None = Field(default=None, alias="accessPredicate")


def build_url(base_path: str | None, slugs: list[str]) -> str:
    """Join a base path with a chain of slugs.

    Examples:
        >>> build_url("/blog", ["guides", "install"])
        '/blog/guides/install'
        >>> build_url(None, ["about"])
        '/about'
    """
    base = "/" + (base_path or "").strip("/")
    path = "/".join(s for s in slugs if s)
    if not path:
        return base
    return f"{base.rstrip('/')}/{path}"


def group_items(items: list[dict[str, Any]], field_name: str) -> dict[str, list[dict[str, Any]]]:
    """Bucket items by the value of a field.

    List values (such as tags) put the item in one group per entry; object
    values are keyed by their name, title or slug. Items without a value go
    to the uncategorized group.
    """
    groups: dict[str, list[dict[str, Any]]] = {}

    def key_of(value: Any) -> str | None:
        if isinstance(value, dict):
            for attr in ("name", "title", "slug"):
                if value.get(attr):
                    return str(value[attr])
            return None
        if value is None or value == "":
            return None
        return str(value)

    for item in items:
        value = item.get(field_name)
        values = value if isinstance(value, list) else [value]
        keys = [k for k in (key_of(v) for v in values) if k is not None]
        for key in keys or [UNCATEGORIZED_GROUP]:
            groups.setdefault(key, []).append(item)
    return groups


class _Where:
    """Accumulates AND-ed clauses with uniquely named bound parameters."""

    def __init__(self) -> None:
        self.clauses: list[str] = []
        self.params: dict[str, Any] = {}

    def param(self, value: Any) -> str:
        name = f"{_PARAM_PREFIX}{len(self.params)}"
        self.params[name] = value
        return f":{name}"

    def in_list(self, values: list[Any]) -> str:
        return ", ".join(self.param(v) for v in values)

    def add(self, clause: str) -> None:
        self.clauses.append(clause)

    def add_predicate(self, predicate: QueryPredicate) -> None:
        """AND an external predicate, rebinding its parameters to builder names."""
        renamed = {name: self.param(value) for name, value in predicate.params.items()}
        self.add(_BIND_PATTERN.sub(lambda m: renamed.get(m.group(1), m.group(0)), predicate.sql))

    @property
    def sql(self) -> str:
        return " AND ".join(f"({c})" for c in self.clauses) if self.clauses else "1 = 1"


class ContentService:
    """Query façade over the content of every registered entity."""

    def __init__(
        self,
        session: AsyncSession,
        registry: SchemaRegistry,
        authorizer: Authorizer | None = None,
        file_store: FileStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            session: Database session.
            registry: Runtime schema source.
            authorizer: Authorization component; defaults to allowing everything.
            file_store: File lookup used when hydrating file fields.
            settings: Application settings; defaults to the cached settings.
        """
        self.session = session
        self.registry = registry
        self.authorizer = authorizer or AllowAllAuthorizer()
        self.file_store = file_store
        self.settings = settings or get_settings()
        self.repo = ContentRepository(session)
        self.tag_service = TagService(session)

    def _loader(self, schema: GeneratedSchema) -> ContentLoader:
        return ContentLoader(
            self.session,
            schema,
            file_store=self.file_store,
            tag_service=self.tag_service,
            relation_depth=self.settings.relation_depth,
        )

    def _writer(self, schema: GeneratedSchema) -> ContentWriter:
        return ContentWriter(self.session, schema, authorizer=self.authorizer, tag_service=self.tag_service)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_items(
        self,
        slug: str,
        options: QueryOptions | dict[str, Any] | None = None,
        kind: EntityKind | str = EntityKind.COLLECTION,
    ) -> ItemListResult:
        """List items of an entity.

        Args:
            slug: Entity slug.
            options: Query options, as a model or a dict using either key style.
            kind: Entity kind.

        Returns:
            The page of items with totals; an empty result on any error.
        """
        try:
            if not isinstance(options, QueryOptions):
                options = QueryOptions.model_validate(options or {})
            schema = await self.registry.schema(self.session)
            config = schema.entity(kind, slug)
            main = schema.table(config.table)

            where = _Where()
            if options.status and options.status != "all" and main.has_column("status"):
                where.add(f'"status" = {where.param(options.status)}')
            if options.parent_id is not None and main.has_column("parent_id"):
                where.add(f'"parent_id" = {where.param(options.parent_id)}')
            if options.sibling_of:
                if not await self._sibling_clause(main, options, where):
                    return ItemListResult.empty()
            if options.where_related is not None:
                await self._related_clause(schema, config, options.where_related, where)
            await self._access_clause(config, options.access_predicate, where)

            order_by = options.order_by if main.has_column(options.order_by) else DEFAULT_ORDER_COLUMN
            limit = min(options.limit, self.settings.max_page_size) if options.limit else None
            offset = options.offset
            if options.current_page and limit:
                offset = (options.current_page - 1) * limit

            total = await self.repo.count(main, where.sql, where.params)
            rows = await self.repo.find(
                main,
                where.sql,
                where.params,
                order_by=order_by,
                descending=options.order == "desc",
                limit=limit,
                offset=offset,
            )

            loader = self._loader(schema)
            items = [await self._present(loader, config, main, row, options) for row in rows]
            return ItemListResult(
                items=items,
                total=total,
                has_more=offset + len(items) < total,
                pagination=Pagination.build(total, limit, offset) if limit else None,
                grouped=group_items(items, options.group_by) if options.group_by else None,
            )
        except Exception as e:
            logger.warning("Item list query failed", entity=entity_key(kind, slug), error=str(e))
            return ItemListResult.empty()

    async def get_item(
        self,
        slug: str,
        item_id: str | None = None,
        item_slug: str | None = None,
        kind: EntityKind | str = EntityKind.COLLECTION,
        status: str | None = None,
        include_blocks: bool = True,
        include_breadcrumbs: bool = False,
        base_url: str | None = None,
        access_predicate: QueryPredicate | None = None,
    ) -> dict[str, Any] | None:
        """Fetch one item by id or slug.

        No status filter is applied unless a status is given.

        Returns:
            The hydrated item, or None when not found or on any error.
        """
        if not item_id and not item_slug:
            return None
        try:
            schema = await self.registry.schema(self.session)
            config = schema.entity(kind, slug)
            main = schema.table(config.table)

            where = _Where()
            if item_id:
                where.add(f'"id" = {where.param(item_id)}')
            if item_slug:
                if not main.has_column("slug"):
                    raise SchemaMismatchError(f"Table '{main.name}' has no slug column")
                where.add(f'"slug" = {where.param(item_slug)}')
            if status and status != "all" and main.has_column("status"):
                where.add(f'"status" = {where.param(status)}')
            await self._access_clause(config, access_predicate, where)

            rows = await self.repo.find(main, where.sql, where.params, limit=1)
            if not rows:
                return None
            options = QueryOptions(
                include_blocks=include_blocks,
                include_breadcrumbs=include_breadcrumbs,
                base_url=base_url,
            )
            return await self._present(self._loader(schema), config, main, rows[0], options)
        except Exception as e:
            logger.warning(
                "Item query failed", entity=entity_key(kind, slug), item_id=item_id, item_slug=item_slug, error=str(e)
            )
            return None

    async def _sibling_clause(self, main: TableSpec, options: QueryOptions, where: _Where) -> bool:
        """Restrict to items sharing the reference item's parent; False when it does not exist."""
        reference = await self.repo.get_row(main, options.sibling_of)
        if reference is None or not main.has_column("parent_id"):
            return False
        parent_id = sanitize_id(reference.get("parent_id"))
        if parent_id is None:
            where.add('"parent_id" IS NULL')
        else:
            where.add(f'"parent_id" = {where.param(parent_id)}')
        if options.exclude_current:
            where.add(f'"id" != {where.param(reference["id"])}')
        return True

    async def _related_clause(
        self, schema: GeneratedSchema, config: EntityConfig, related: RelatedFilter, where: _Where
    ) -> None:
        """Restrict to items related to the given target ids or slugs."""
        definition = config.fields.get(related.field)
        if definition is None:
            raise SchemaMismatchError(f"Field '{related.field}' is not defined on {config.key}")
        values = related.target_values()
        if not values:
            return

        match classify(definition):
            case RelationField(is_many=True, relation=relation):
                junction = schema.table(
                    junction_table_name_for(config.kind, owner_path_for(config.table), related.field)
                )
                target = schema.table(schema.entity(relation.target_kind, relation.target_slug).table)
                where.add(
                    f'"id" IN (SELECT j.{quote(junction.foreign_key)} FROM {quote(junction.name)} j '
                    f'INNER JOIN {quote(target.name)} t ON j."target_id" = t."id" '
                    f"WHERE {self._target_match(target, values, where)})"
                )
            case RelationField(relation=relation):
                target = schema.table(schema.entity(relation.target_kind, relation.target_slug).table)
                where.add(
                    f'{quote(related.field)} IN (SELECT t."id" FROM {quote(target.name)} t '
                    f"WHERE {self._target_match(target, values, where)})"
                )
            case TagsField():
                names = where.in_list(values)
                where.add(
                    '"id" IN (SELECT tg."taggable_id" FROM "taggables" tg '
                    'INNER JOIN "tags" t ON tg."tag_id" = t."id" '
                    f'WHERE tg."taggable_type" = {where.param(config.table)} '
                    f'AND tg."field_name" = {where.param(related.field)} '
                    f'AND (t."slug" IN ({names}) OR t."name" IN ({names})))'
                )
            case ScalarField():
                where.add(f"{quote(related.field)} IN ({where.in_list(values)})")
            case FileField() | ArrayField():
                raise SchemaMismatchError(f"Field '{related.field}' cannot be used as a relationship filter")

    @staticmethod
    def _target_match(target: TableSpec, values: list[str], where: _Where) -> str:
        ids = where.in_list(values)
        if target.has_column("slug"):
            return f't."id" IN ({ids}) OR t."slug" IN ({ids})'
        return f't."id" IN ({ids})'

    async def _access_clause(
        self, config: EntityConfig, predicate: QueryPredicate | None, where: _Where
    ) -> None:
        """AND the caller's predicate, or the authorizer's read predicate, into the query."""
        if predicate is None:
            predicate = await self.authorizer.build_query_predicate(config.kind, config.table, "read")
        if predicate is None:
            return
        where.add_predicate(predicate)

    async def _present(
        self,
        loader: ContentLoader,
        config: EntityConfig,
        main: TableSpec,
        row: dict[str, Any],
        options: QueryOptions,
    ) -> dict[str, Any]:
        item = await loader.load_item(config, row, include_blocks=options.include_blocks)
        if main.has_column("slug"):
            ancestors = await self._ancestors(main, item)
            base_path = options.base_url or config.options.base_path
            chain = [a.get("slug") for a in ancestors]
            item["url"] = build_url(base_path, chain + [item.get("slug")])
            if options.include_breadcrumbs:
                item["breadcrumbs"] = self._breadcrumbs(base_path, ancestors, item)
        return item

    async def _ancestors(self, main: TableSpec, item: dict[str, Any]) -> list[dict[str, Any]]:
        """Parent chain of an item, root first. Stops at a missing parent or a cycle."""
        if not main.has_column("parent_id"):
            return []
        chain: list[dict[str, Any]] = []
        seen = {item.get("id")}
        parent_id = sanitize_id(item.get("parent_id"))
        while parent_id is not None and parent_id not in seen:
            seen.add(parent_id)
            parent = await self.repo.get_row(main, parent_id)
            if parent is None:
                break
            chain.insert(0, parent)
            parent_id = sanitize_id(parent.get("parent_id"))
        return chain

    @staticmethod
    def _breadcrumbs(
        base_path: str | None, ancestors: list[dict[str, Any]], item: dict[str, Any]
    ) -> list[dict[str, Any]]:
        crumbs = []
        slugs: list[str] = []
        for ancestor in ancestors:
            slugs.append(ancestor.get("slug"))
            crumbs.append({
                "label": ancestor.get("title"),
                "url": build_url(base_path, slugs),
                "is_active": False,
                "is_current": False,
            })
        crumbs.append({
            "label": item.get("title"),
            "url": item["url"],
            "is_active": True,
            "is_current": True,
        })
        return crumbs

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save_item(
        self,
        slug: str,
        item_id: str | None,
        payload: dict[str, Any],
        acting_user: str | None = None,
        kind: EntityKind | str = EntityKind.COLLECTION,
    ) -> OperationResult:
        """Create or update an item.

        Returns:
            Success with the item id, or a failure carrying a displayable error.
        """
        try:
            schema = await self.registry.schema(self.session)
            config = schema.entity(kind, slug)
        except Exception as e:
            logger.warning("Save target not registered", entity=entity_key(kind, slug), error=str(e))
            return OperationResult.failure(str(e), code="schema_mismatch")
        return await self._writer(schema).save(config, item_id, payload, acting_user)

    async def delete_item(
        self,
        slug: str,
        item_id: str,
        acting_user: str | None = None,
        kind: EntityKind | str = EntityKind.COLLECTION,
    ) -> OperationResult:
        """Delete an item.

        Returns:
            Success, or a failure carrying a displayable error.
        """
        try:
            schema = await self.registry.schema(self.session)
            config = schema.entity(kind, slug)
        except Exception as e:
            logger.warning("Delete target not registered", entity=entity_key(kind, slug), error=str(e))
            return OperationResult.failure(str(e), code="schema_mismatch")
        return await self._writer(schema).delete(config, item_id, acting_user)
