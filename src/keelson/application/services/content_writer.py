"""Content writer.

Persists a field-keyed payload for one item across its main table and every
child table in a single transaction. Array items are reconciled by id, file
relations and junction rows are cleared and reinserted, and tags are saved
after the commit.
"""

import uuid
from dataclasses import asdict
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from keelson.application.services.tag_service import TagService
from keelson.core.exceptions import (
    ContentValidationError,
    FieldError,
    PermissionDeniedError,
    ReferenceIntegrityError,
    SchemaMismatchError,
)
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
from keelson.domain.entities.result import OperationResult
from keelson.domain.entities.schema import EntityConfig, GeneratedSchema
from keelson.domain.entities.table import TableRole, TableSpec
from keelson.domain.services.naming import (
    array_table_name_for,
    blocks_table_name_for,
    file_relation_table_name_for,
    junction_table_name_for,
    owner_path_for,
)
from keelson.domain.services.payload_validator import PayloadValidator
from keelson.domain.services.ports import AllowAllAuthorizer, Authorizer
from keelson.domain.services.slug_generator import SlugGenerator
from keelson.domain.services.value_coercion import normalize_reference, reference_list, sanitize_id
from keelson.infrastructure.persistence.repositories import ContentRepository
from keelson.infrastructure.persistence.value_codec import ValueCodec

logger = get_logger(__name__)

BLOCKS_PAYLOAD_KEY = "blocks"


def _new_id() -> str:
    return str(uuid.uuid4())


def file_references(value: Any) -> list[tuple[str, str | None]]:
    """Normalize a file field payload to ordered (file_id, alt_override) pairs.

    Accepts a bare id, an object carrying `id` (and optionally
    `alt_override`), or a list of either. Duplicates keep their first position.
    """
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        value = [value]
    refs: list[tuple[str, str | None]] = []
    seen: set[str] = set()
    for entry in value:
        file_id = normalize_reference(entry)
        if file_id is None or file_id in seen:
            continue
        seen.add(file_id)
        alt = entry.get("alt_override") if isinstance(entry, dict) else None
        refs.append((file_id, alt or None))
    return refs


class ContentWriter:
    """Saves and deletes items of generated tables."""

    def __init__(
        self,
        session: AsyncSession,
        schema: GeneratedSchema,
        authorizer: Authorizer | None = None,
        tag_service: TagService | None = None,
    ) -> None:
        """Initialize the writer.

        Args:
            session: Database session the transaction runs on.
            schema: Runtime schema every table is resolved through.
            authorizer: Authorization gate; defaults to allowing everything.
            tag_service: Tag persistence; defaults to a service on the same session.
        """
        self.session = session
        self.schema = schema
        self.repo = ContentRepository(session)
        self.authorizer = authorizer or AllowAllAuthorizer()
        self.tag_service = tag_service or TagService(session)
        self.codec = ValueCodec(session.get_bind().dialect.name)

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    async def save(
        self,
        config: EntityConfig,
        item_id: Any,
        payload: dict[str, Any],
        acting_user: str | None = None,
    ) -> OperationResult:
        """Create or update an item with every nested field.

        The item is created when no row with the id exists; a missing id
        gets a new UUID.

        Args:
            config: The entity being written.
            item_id: Id of the item, or None to create one.
            payload: Field-keyed values, possibly nested.
            acting_user: Id of the user performing the save.

        Returns:
            Success with the item id, or a failure carrying a displayable error.
        """
        item_id = sanitize_id(item_id) or sanitize_id(payload.get("id"))
        creating = True
        try:
            main = self.schema.table(config.table)
            existing = await self.repo.get_row(main, item_id) if item_id else None
            creating = existing is None
            item_id = item_id or _new_id()
            action = "create" if creating else "update"

            resource = dict(existing) if existing else {**payload, "id": item_id}
            if not await self.authorizer.can(action, config.kind, resource):
                raise PermissionDeniedError(action, config.kind.value, f"{config.slug}/{item_id}")

            data = await self._prepare(config, main, payload, creating, acting_user)
            await self._validate(config, item_id, data, creating)
            await self._check_parent(main, item_id, data)

            now = self.codec.timestamp()
            columns = await self._row_columns(config.fields, data)
            columns["updated_at"] = now
            if creating:
                await self.repo.insert_row(main, {"id": item_id, "created_at": now, **columns})
            else:
                await self.repo.update_row(main, item_id, columns)

            await self._write_children(config.kind, config.table, item_id, config.fields, data)
            if BLOCKS_PAYLOAD_KEY in data and self._accepts_blocks(config):
                await self._write_blocks(config, item_id, data[BLOCKS_PAYLOAD_KEY] or [])

            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            return self._failure("save", config, item_id, e)

        logger.info(
            "Item saved",
            entity=config.key,
            item_id=item_id,
            created=creating,
            acting_user=acting_user,
        )
        await self._save_tags(config, item_id, data)
        return OperationResult.ok(item_id)

    def _accepts_blocks(self, config: EntityConfig) -> bool:
        return config.options.blocks_enabled and config.kind != EntityKind.BLOCK

    async def _prepare(
        self,
        config: EntityConfig,
        main: TableSpec,
        payload: dict[str, Any],
        creating: bool,
        acting_user: str | None,
    ) -> dict[str, Any]:
        """Apply create defaults, derived slug and audit fields."""
        data = dict(payload)
        data.pop("id", None)
        fields = config.fields
        if creating:
            for name, definition in fields.items():
                if name not in data and definition.default is not None and isinstance(classify(definition), ScalarField):
                    data[name] = definition.default
            if "slug" in fields and not data.get("slug") and isinstance(data.get("title"), str) and data["title"].strip():
                data["slug"] = await self._unique_slug(main, SlugGenerator.generate(data["title"]))
            if "author" in fields and not data.get("author") and acting_user:
                data["author"] = acting_user
        if "last_modified_by" in fields and acting_user:
            data["last_modified_by"] = acting_user
        return data

    async def _unique_slug(self, main: TableSpec, base: str) -> str:
        candidate = base
        suffix = 2
        while await self.repo.get_row_by(main, "slug", candidate) is not None:
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    async def _validate(self, config: EntityConfig, item_id: str, data: dict[str, Any], creating: bool) -> None:
        errors = PayloadValidator.collect_errors(config.fields, data, creating)
        if BLOCKS_PAYLOAD_KEY in data and self._accepts_blocks(config):
            placed: dict[str, str] = {}
            if not creating:
                spec = self.schema.table(blocks_table_name_for(config.table))
                placed = {p["block_id"]: p["block_type"] for p in await self.repo.list_children(spec, item_id)}
            errors.extend(self._block_errors(config, data[BLOCKS_PAYLOAD_KEY], placed))
        if errors:
            raise ContentValidationError(errors)

    def _block_errors(self, config: EntityConfig, blocks: Any, placed: dict[str, str]) -> list[FieldError]:
        """Validate the blocks payload.

        A block is validated as an update only when its id is already placed
        on the item with the same block type; otherwise it will be inserted.
        """
        if blocks is None:
            return []
        if not isinstance(blocks, list):
            return [FieldError(BLOCKS_PAYLOAD_KEY, "Expected a list of blocks", "invalid_type")]
        allowed = config.options.allowed_blocks
        errors: list[FieldError] = []
        seen_ids: set[str] = set()
        for index, block in enumerate(blocks):
            path = f"{BLOCKS_PAYLOAD_KEY}[{index}]"
            if not isinstance(block, dict) or not block.get("blockType"):
                errors.append(FieldError(path, "Block must be an object with a blockType", "invalid_block"))
                continue
            errors.extend(PayloadValidator.duplicate_id_errors(block, seen_ids, path))
            block_type = block["blockType"]
            if allowed is not None and block_type not in allowed:
                errors.append(FieldError(path, f"Block type '{block_type}' is not allowed here", "block_not_allowed"))
                continue
            block_config = self.schema.find_entity(EntityKind.BLOCK, block_type)
            if block_config is None:
                errors.append(FieldError(path, f"Unknown block type '{block_type}'", "unknown_block"))
                continue
            updating = placed.get(sanitize_id(block.get("id"))) == block_config.slug
            errors.extend(
                PayloadValidator.collect_errors(block_config.fields, block, creating=not updating, prefix=f"{path}.")
            )
        return errors

    async def _check_parent(self, main: TableSpec, item_id: str, data: dict[str, Any]) -> None:
        """Sanitize parent_id and check that it names an existing, non-descendant item."""
        if "parent_id" not in data or not main.has_column("parent_id"):
            return
        parent_id = sanitize_id(data["parent_id"])
        data["parent_id"] = parent_id
        if parent_id is None:
            return
        if parent_id == item_id:
            raise ReferenceIntegrityError("An item cannot be its own parent")

        seen = {item_id}
        current: str | None = parent_id
        while current is not None:
            row = await self.repo.get_row(main, current)
            if row is None:
                raise ReferenceIntegrityError(f"Parent '{current}' does not exist in {main.name}")
            seen.add(current)
            current = sanitize_id(row.get("parent_id"))
            if current in seen:
                if current == item_id:
                    raise ReferenceIntegrityError("Parent assignment would create a cycle")
                break

    async def _check_target(self, relation: RelationSpec, target_id: str) -> None:
        target = self.schema.entity(relation.target_kind, relation.target_slug)
        if not await self.repo.exists(self.schema.table(target.table), target_id):
            raise ReferenceIntegrityError(
                f"Relation target {relation.target_kind} '{relation.target_slug}/{target_id}' does not exist"
            )

    async def _row_columns(self, fields: dict[str, FieldDefinition], data: dict[str, Any]) -> dict[str, Any]:
        """Encoded column values for the fields of data stored on the owning row."""
        columns: dict[str, Any] = {}
        for name, definition in fields.items():
            if name not in data:
                continue
            match classify(definition):
                case RelationField(is_many=False, relation=relation):
                    target_id = normalize_reference(data[name])
                    if target_id is not None:
                        await self._check_target(relation, target_id)
                    columns[name] = target_id
                case ScalarField():
                    try:
                        columns[name] = self.codec.encode(definition, data[name])
                    except (TypeError, ValueError) as e:
                        raise ContentValidationError([FieldError(name, str(e), "invalid_value")]) from e
                case FileField() | ArrayField() | RelationField() | TagsField():
                    pass
        return columns

    async def _write_children(
        self,
        kind: EntityKind,
        owner_table: str,
        owner_id: str,
        fields: dict[str, FieldDefinition],
        data: dict[str, Any],
    ) -> None:
        """Persist the array, file and many-to-many fields present in data."""
        for name, definition in fields.items():
            if name not in data:
                continue
            value = data[name]
            match classify(definition):
                case ArrayField(properties=properties):
                    await self._write_array(kind, owner_table, owner_id, name, properties, value or [])
                case FileField(multiple=multiple):
                    refs = file_references(value)
                    await self._write_files(owner_table, owner_id, name, refs if multiple else refs[:1])
                case RelationField(is_many=True, relation=relation):
                    await self._write_junction(kind, owner_table, owner_id, name, relation, reference_list(value))
                case ScalarField() | RelationField() | TagsField():
                    pass

    async def _write_array(
        self,
        kind: EntityKind,
        owner_table: str,
        owner_id: str,
        field_name: str,
        properties: dict[str, FieldDefinition],
        items: list[dict[str, Any]],
    ) -> None:
        """Reconcile the items of an array field by id.

        Stored items whose id is absent from the payload are deleted with
        their descendants; incoming items are updated or inserted with sort
        set to their position, then their nested fields are written the
        same way.
        """
        spec = self.schema.table(array_table_name_for(owner_table, field_name))
        keep = [item_id for item_id in (sanitize_id(item.get("id")) for item in items) if item_id]
        stale = await self.repo.stale_child_ids(spec, owner_id, keep)
        await self._delete_rows(spec, stale)

        for position, item in enumerate(items):
            now = self.codec.timestamp()
            columns = await self._row_columns(properties, item)
            columns["sort"] = position
            columns["updated_at"] = now

            item_id = sanitize_id(item.get("id"))
            updated = 0
            if item_id is not None:
                updated = await self.repo.update_row(spec, item_id, columns, owner_id=owner_id)
                if not updated and await self.repo.exists(spec, item_id):
                    # Id belongs to another owner's item
                    item_id = None
            if not updated:
                item_id = item_id or _new_id()
                await self.repo.insert_row(
                    spec, {"id": item_id, spec.foreign_key: owner_id, "created_at": now, **columns}
                )
            await self._write_children(kind, spec.name, item_id, properties, item)

    async def _write_files(
        self,
        owner_table: str,
        owner_id: str,
        field_name: str,
        refs: list[tuple[str, str | None]],
    ) -> None:
        """Replace the file-relation rows of a file field, keeping the given order."""
        spec = self.schema.table(file_relation_table_name_for(owner_table, field_name))
        await self.repo.delete_where(spec, spec.foreign_key, [owner_id])
        for position, (file_id, alt_override) in enumerate(refs):
            await self.repo.insert_row(
                spec,
                {
                    "id": _new_id(),
                    spec.foreign_key: owner_id,
                    "file_id": file_id,
                    "sort": position,
                    "alt_override": alt_override,
                    "created_at": self.codec.timestamp(position),
                },
            )

    async def _write_junction(
        self,
        kind: EntityKind,
        owner_table: str,
        owner_id: str,
        field_name: str,
        relation: RelationSpec,
        target_ids: list[str],
    ) -> None:
        """Replace the junction rows of a many-to-many field.

        Link timestamps increase with payload position so targets load back
        in the given order.
        """
        spec = self.schema.table(junction_table_name_for(kind, owner_path_for(owner_table), field_name))
        await self.repo.delete_where(spec, spec.foreign_key, [owner_id])
        for position, target_id in enumerate(target_ids):
            await self._check_target(relation, target_id)
            now = self.codec.timestamp(position)
            await self.repo.insert_row(
                spec,
                {
                    "id": _new_id(),
                    spec.foreign_key: owner_id,
                    "target_id": target_id,
                    "created_at": now,
                    "updated_at": now,
                },
            )

    async def _write_blocks(self, config: EntityConfig, owner_id: str, blocks: list[dict[str, Any]]) -> None:
        """Reconcile the ordered blocks placed on an item.

        Placements are matched by block id and type; unmatched stored blocks
        are deleted with their descendants.
        """
        spec = self.schema.table(blocks_table_name_for(config.table))
        placements = {p["block_id"]: p for p in await self.repo.list_children(spec, owner_id)}
        incoming = {
            sanitize_id(block.get("id")): block["blockType"]
            for block in blocks
            if sanitize_id(block.get("id")) is not None
        }

        stale = [p for block_id, p in placements.items() if incoming.get(block_id) != p["block_type"]]
        for placement in stale:
            await self._delete_block(placement)
        await self.repo.delete_by_ids(spec, [p["id"] for p in stale])

        for position, block in enumerate(blocks):
            block_config = self.schema.entity(EntityKind.BLOCK, block["blockType"])
            block_table = self.schema.table(block_config.table)
            now = self.codec.timestamp()
            columns = await self._row_columns(block_config.fields, block)
            columns["updated_at"] = now

            block_id = sanitize_id(block.get("id"))
            placement = placements.get(block_id) if block_id else None
            if placement is not None and placement["block_type"] == block_config.slug:
                await self.repo.update_row(block_table, block_id, columns)
                await self.repo.update_row(spec, placement["id"], {"sort": position, "updated_at": now})
            else:
                block_id = _new_id()
                await self.repo.insert_row(block_table, {"id": block_id, "created_at": now, **columns})
                await self.repo.insert_row(
                    spec,
                    {
                        "id": _new_id(),
                        spec.foreign_key: owner_id,
                        "block_type": block_config.slug,
                        "block_id": block_id,
                        "sort": position,
                        "created_at": now,
                        "updated_at": now,
                    },
                )
            await self._write_children(EntityKind.BLOCK, block_config.table, block_id, block_config.fields, block)

    async def _delete_block(self, placement: dict[str, Any]) -> None:
        block_config = self.schema.find_entity(EntityKind.BLOCK, placement["block_type"])
        if block_config is not None:
            await self._delete_rows(self.schema.table(block_config.table), [placement["block_id"]])
        else:
            logger.warning("Removing placement of unregistered block type", block_type=placement["block_type"])

    async def _delete_rows(self, spec: TableSpec, ids: list[str]) -> None:
        """Delete rows of a table together with every descendant row."""
        if not ids:
            return
        for child in self.schema.child_tables(spec.name):
            match child.role:
                case TableRole.ARRAY:
                    await self._delete_rows(child, await self.repo.child_ids(child, ids))
                case TableRole.BLOCKS:
                    for owner_id in ids:
                        for placement in await self.repo.list_children(child, owner_id):
                            await self._delete_block(placement)
                    await self.repo.delete_where(child, child.foreign_key, ids)
                case TableRole.FILE | TableRole.JUNCTION:
                    await self.repo.delete_where(child, child.foreign_key, ids)
                case TableRole.MAIN:
                    pass
        await self.repo.delete_by_ids(spec, ids)

    async def _save_tags(self, config: EntityConfig, item_id: str, data: dict[str, Any]) -> None:
        """Persist tag fields after the content commit; failures are logged only."""
        for name, definition in config.fields.items():
            if name not in data or not isinstance(classify(definition), TagsField):
                continue
            try:
                await self.tag_service.tag_entity(config.table, item_id, data[name], field_name=name)
            except Exception as e:
                logger.error(
                    "Tag persistence failed after content commit",
                    entity=config.key,
                    item_id=item_id,
                    field=name,
                    error=str(e),
                )

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(self, config: EntityConfig, item_id: Any, acting_user: str | None = None) -> OperationResult:
        """Delete an item with its descendants, blocks and incoming links.

        Children of a nestable item move up to the deleted item's parent.

        Args:
            config: The entity being written.
            item_id: Id of the item.
            acting_user: Id of the user performing the delete.

        Returns:
            Success, or a failure carrying a displayable error.
        """
        item_id = sanitize_id(item_id)
        if item_id is None:
            return OperationResult.failure("Item id is required", code="invalid_id")
        try:
            main = self.schema.table(config.table)
            existing = await self.repo.get_row(main, item_id)
            if existing is None:
                return OperationResult.failure(f"{config.name_singular} '{item_id}' not found", code="not_found")
            if not await self.authorizer.can("delete", config.kind, dict(existing)):
                raise PermissionDeniedError("delete", config.kind.value, f"{config.slug}/{item_id}")

            for junction in self.schema.junctions_targeting(config.table):
                await self.repo.delete_where(junction, "target_id", [item_id])
            for table, column in self._reference_columns(config):
                await self.repo.clear_references(table, column, item_id)
            if main.has_column("parent_id"):
                await self.repo.reparent(main, item_id, sanitize_id(existing.get("parent_id")))
            await self._delete_rows(main, [item_id])

            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            return self._failure("delete", config, item_id, e)

        logger.info("Item deleted", entity=config.key, item_id=item_id, acting_user=acting_user)
        if any(isinstance(classify(d), TagsField) for d in config.fields.values()):
            try:
                await self.tag_service.untag_entity(config.table, item_id)
            except Exception as e:
                logger.error("Tag cleanup failed after delete", entity=config.key, item_id=item_id, error=str(e))
        return OperationResult.ok(item_id)

    def _reference_columns(self, config: EntityConfig) -> list[tuple[TableSpec, str]]:
        """Single-valued relation columns anywhere in the schema that point at config."""
        references = []
        for owner in self.schema.entities.values():
            for entry in owner.field_config:
                target = entry.get("target")
                if entry.get("storage") != "column" or not target:
                    continue
                target_slug = target.get("targetGlobal") or target.get("targetCollection")
                target_kind = EntityKind.GLOBAL if target.get("targetGlobal") else EntityKind.COLLECTION
                if target_kind == config.kind and target_slug == config.slug:
                    references.append((self.schema.table(entry["table"]), entry["column"]))
        return references

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def _failure(self, operation: str, config: EntityConfig, item_id: str | None, error: Exception) -> OperationResult:
        """Convert an exception raised inside a write into a failed result."""
        log = {"operation": operation, "entity": config.key, "item_id": item_id, "error": str(error)}
        match error:
            case PermissionDeniedError():
                logger.warning("Write denied", **log)
                return OperationResult.failure(str(error), code="permission_denied")
            case ContentValidationError(errors=errors):
                logger.warning("Write rejected by validation", **log)
                return OperationResult.failure(
                    str(error), code="validation_error", details=[asdict(e) for e in errors]
                )
            case ReferenceIntegrityError():
                logger.warning("Write rejected by reference check", **log)
                return OperationResult.failure(str(error), code="reference_error")
            case SchemaMismatchError():
                logger.error("Write references an undescribed table", **log)
                return OperationResult.failure(str(error), code="schema_mismatch")
            case IntegrityError():
                logger.warning("Write violated a database constraint", **log)
                return OperationResult.failure(
                    f"Could not {operation} {config.name_singular}: a unique or required value conflicts",
                    code="integrity_error",
                )
            case SQLAlchemyError():
                logger.error("Database error during write", **log)
                return OperationResult.failure(
                    f"Could not {operation} {config.name_singular} due to a database error",
                    code="database_error",
                )
            case _:
                logger.exception("Unexpected error during write", **log)
                return OperationResult.failure(f"Could not {operation} {config.name_singular}", code="error")
