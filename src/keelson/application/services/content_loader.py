"""Content loader.

Hydrates the non-scalar fields of a fetched row in place: file fields,
array-of-object fields (recursively), relation fields, tags and blocks.
Failures are contained to the field that caused them; the field falls back
to an empty value and sibling fields keep loading.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from keelson.application.services.tag_service import TagService
from keelson.core.config import get_settings
from keelson.core.logging import get_logger
from keelson.domain.entities.definition import EntityKind
from keelson.domain.entities.field import (
    ArrayField,
    FieldDefinition,
    FileField,
    RelationField,
    RelationSpec,
    ScalarField,
    TagsField,
    classify,
)
from keelson.domain.entities.schema import EntityConfig, GeneratedSchema
from keelson.domain.services.naming import (
    array_table_name_for,
    blocks_table_name_for,
    file_relation_table_name_for,
    junction_table_name_for,
    owner_path_for,
)
from keelson.domain.services.ports import FileStore
from keelson.domain.services.value_coercion import sanitize_id
from keelson.infrastructure.persistence.repositories import ContentRepository, FileRepository
from keelson.infrastructure.persistence.value_codec import ValueCodec

logger = get_logger(__name__)

# Columns of array-item rows that are not part of the item payload
_ITEM_BOOKKEEPING_COLUMNS = ("created_at", "updated_at")


def _empty_value(definition: FieldDefinition) -> Any:
    match classify(definition):
        case FileField(multiple=False) | RelationField(is_many=False):
            return None
        case FileField() | ArrayField() | RelationField() | TagsField():
            return []
        case ScalarField():
            return None


class ContentLoader:
    """Recursively materializes nested content for rows of generated tables."""

    def __init__(
        self,
        session: AsyncSession,
        schema: GeneratedSchema,
        file_store: FileStore | None = None,
        tag_service: TagService | None = None,
        relation_depth: int | None = None,
    ) -> None:
        """Initialize the loader.

        Args:
            session: Database session.
            schema: Runtime schema every table is resolved through.
            file_store: File lookup; defaults to the files table.
            tag_service: Tag lookup; defaults to a service on the same session.
            relation_depth: Levels of relation targets to hydrate; defaults to settings.
        """
        self.session = session
        self.schema = schema
        self.repo = ContentRepository(session)
        self.file_store = file_store or FileRepository(session)
        self.tag_service = tag_service or TagService(session)
        self.relation_depth = (
            relation_depth if relation_depth is not None else get_settings().relation_depth
        )
        self.codec = ValueCodec(session.get_bind().dialect.name)

    async def load_item(
        self, config: EntityConfig, row: dict[str, Any], include_blocks: bool = True
    ) -> dict[str, Any]:
        """Hydrate a main-table row of an entity.

        Args:
            config: The entity the row belongs to.
            row: The fetched row; it is modified in place.
            include_blocks: Also load the ordered blocks placed on the item.

        Returns:
            The hydrated row.
        """
        await self.populate(row, config.fields, config.table, config.kind)
        if include_blocks and config.options.blocks_enabled and config.kind != EntityKind.BLOCK:
            row["blocks"] = await self.load_blocks(config, row["id"])
        return row

    async def populate(
        self,
        row: dict[str, Any],
        fields: dict[str, FieldDefinition],
        owner_table: str,
        kind: EntityKind,
        depth: int = 0,
    ) -> dict[str, Any]:
        """Decode the scalar columns of a row and hydrate every other field.

        Args:
            row: Row of owner_table; modified in place.
            fields: Fields describing the row.
            owner_table: Table the row was read from.
            kind: Kind of the entity owning the table.
            depth: Relation hops already taken from the root item.

        Returns:
            The hydrated row.
        """
        self._decode_columns(row, fields)
        owner_id = row.get("id")
        for name, definition in fields.items():
            try:
                row[name] = await self._load_field(row, definition, owner_table, owner_id, kind, depth)
            except Exception as e:
                logger.warning(
                    "Field could not be loaded",
                    table=owner_table,
                    field=name,
                    owner_id=owner_id,
                    error=str(e),
                )
                row[name] = _empty_value(definition)
        return row

    async def _load_field(
        self,
        row: dict[str, Any],
        definition: FieldDefinition,
        owner_table: str,
        owner_id: str,
        kind: EntityKind,
        depth: int,
    ) -> Any:
        match classify(definition):
            case ScalarField():
                return row.get(definition.name)
            case FileField(multiple=multiple):
                return await self.load_files(row, definition.name, owner_table, multiple)
            case ArrayField(properties=properties):
                return await self.load_array(owner_id, definition.name, properties, owner_table, kind, depth)
            case RelationField(is_many=True, relation=relation):
                return await self.load_many_relation(owner_id, definition.name, relation, owner_table, kind, depth)
            case RelationField(relation=relation):
                return await self.load_single_relation(row.get(definition.name), relation, depth)
            case TagsField():
                return await self.tag_service.get_tags(owner_table, owner_id, definition.name)

    async def _resolve_file(self, file_id: str, alt_override: str | None = None) -> dict[str, Any] | None:
        record = await self.file_store.get_by_id(file_id)
        if record is None:
            logger.warning("Dangling file reference", file_id=file_id)
            return None
        data = record.to_dict()
        if alt_override:
            data["alt"] = alt_override
            data["alt_override"] = alt_override
        return data

    async def load_files(
        self, row: dict[str, Any], field_name: str, owner_table: str, multiple: bool
    ) -> dict[str, Any] | list[dict[str, Any]] | None:
        """Resolve a file field to full file records.

        A raw string id already present on the row is resolved directly;
        otherwise the file-relation rows are read in sort order.
        """
        inline_id = sanitize_id(row.get(field_name)) if isinstance(row.get(field_name), str) else None
        if inline_id is not None:
            record = await self._resolve_file(inline_id)
            if multiple:
                return [record] if record is not None else []
            return record

        spec = self.schema.table(file_relation_table_name_for(owner_table, field_name))
        files = []
        for relation in await self.repo.list_children(spec, row["id"]):
            record = await self._resolve_file(relation["file_id"], relation.get("alt_override"))
            if record is not None:
                files.append(record)
        if multiple:
            return files
        return files[0] if files else None

    async def load_array(
        self,
        owner_id: str,
        field_name: str,
        properties: dict[str, FieldDefinition],
        owner_table: str,
        kind: EntityKind,
        depth: int,
    ) -> list[dict[str, Any]]:
        """Load the items of an array field in sort order, hydrating nested fields."""
        spec = self.schema.table(array_table_name_for(owner_table, field_name))
        items = []
        for item in await self.repo.list_children(spec, owner_id):
            item.pop(spec.foreign_key, None)
            for column in _ITEM_BOOKKEEPING_COLUMNS:
                item.pop(column, None)
            items.append(await self.populate(item, properties, spec.name, kind, depth))
        return items

    async def load_many_relation(
        self,
        owner_id: str,
        field_name: str,
        relation: RelationSpec,
        owner_table: str,
        kind: EntityKind,
        depth: int,
    ) -> list[dict[str, Any]]:
        """Load the targets of a many-to-many relation through its junction table."""
        junction = self.schema.table(junction_table_name_for(kind, owner_path_for(owner_table), field_name))
        target_table = self.schema.table(junction.target_table)
        targets = await self.repo.list_junction_targets(junction, target_table, owner_id)
        return [await self._hydrate_target(target, relation, depth) for target in targets]

    async def load_single_relation(
        self, value: Any, relation: RelationSpec, depth: int
    ) -> dict[str, Any] | str | None:
        """Resolve a single-valued relation column to its target row.

        Beyond the configured depth the bare id is returned.
        """
        target_id = sanitize_id(value)
        if target_id is None:
            return None
        if depth >= self.relation_depth:
            return target_id
        config = self.schema.find_entity(relation.target_kind, relation.target_slug)
        if config is None:
            logger.warning(
                "Relation target schema not registered",
                target=f"{relation.target_kind}:{relation.target_slug}",
            )
            return target_id
        target = await self.repo.get_row(self.schema.table(config.table), target_id)
        if target is None:
            logger.warning("Dangling relation reference", target_table=config.table, target_id=target_id)
            return None
        return await self._hydrate_target(target, relation, depth)

    def _decode_columns(self, row: dict[str, Any], fields: dict[str, FieldDefinition]) -> dict[str, Any]:
        return self.codec.decode_row(
            {name: d for name, d in fields.items() if isinstance(classify(d), ScalarField)}, row
        )

    async def _hydrate_target(
        self, target: dict[str, Any], relation: RelationSpec, depth: int
    ) -> dict[str, Any]:
        """Populate a relation target, or only decode its columns at the depth limit."""
        config = self.schema.find_entity(relation.target_kind, relation.target_slug)
        if config is None:
            logger.warning(
                "Relation target schema not registered",
                target=f"{relation.target_kind}:{relation.target_slug}",
            )
            return target
        if depth >= self.relation_depth:
            return self._decode_columns(target, config.fields)
        return await self.populate(target, config.fields, config.table, config.kind, depth + 1)

    async def load_blocks(self, config: EntityConfig, owner_id: str) -> list[dict[str, Any]]:
        """Load the blocks placed on an item, in placement order."""
        try:
            spec = self.schema.table(blocks_table_name_for(config.table))
            placements = await self.repo.list_children(spec, owner_id)
        except Exception as e:
            logger.warning("Blocks could not be loaded", table=config.table, owner_id=owner_id, error=str(e))
            return []

        blocks = []
        for placement in placements:
            block_config = self.schema.find_entity(EntityKind.BLOCK, placement["block_type"])
            if block_config is None:
                logger.warning("Block type not registered", block_type=placement["block_type"])
                continue
            block_row = await self.repo.get_row(self.schema.table(block_config.table), placement["block_id"])
            if block_row is None:
                logger.warning("Dangling block placement", block_type=placement["block_type"], block_id=placement["block_id"])
                continue
            block = await self.populate(block_row, block_config.fields, block_config.table, EntityKind.BLOCK)
            block["blockType"] = placement["block_type"]
            blocks.append(block)
        return blocks
