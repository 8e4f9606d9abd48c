"""Schema generator.

Turns entity definitions into physical table specifications, flattened
runtime field configuration and per-entity type descriptions.
"""

from typing import Any

from keelson.core.exceptions import DefinitionError, DefinitionIssue
from keelson.core.logging import get_logger
from keelson.domain.entities.definition import DefinitionSet, EntityDefinition, EntityKind
from keelson.domain.entities.field import (
    ArrayField,
    FieldDefinition,
    FieldType,
    FileField,
    RelationField,
    ScalarField,
    TagsField,
    classify,
)
from keelson.domain.entities.schema import EntityConfig, GeneratedSchema
from keelson.domain.entities.table import ColumnSpec, ColumnType, TableRole, TableSpec
from keelson.domain.services.core_fields import SYSTEM_COLUMN_NAMES, merge_fields
from keelson.domain.services.naming import (
    FILE_RELATION_FOREIGN_KEY,
    array_table_name_for,
    blocks_table_name_for,
    file_relation_table_name_for,
    foreign_key_column_for,
    junction_table_name_for,
    owner_path_for,
    table_name_for,
)
from keelson.infrastructure.persistence.type_generator import TypeGenerator

logger = get_logger(__name__)

# Column type for each scalar field type; anything missing is serialized JSON text
FIELD_TYPE_TO_COLUMN = {
    FieldType.STRING: ColumnType.TEXT,
    FieldType.TEXT: ColumnType.TEXT,
    FieldType.TEXTAREA: ColumnType.TEXT,
    FieldType.WYSIWYG: ColumnType.TEXT,
    FieldType.EMAIL: ColumnType.TEXT,
    FieldType.URL: ColumnType.TEXT,
    FieldType.LINK: ColumnType.TEXT,
    FieldType.SLUG: ColumnType.TEXT,
    FieldType.PASSWORD: ColumnType.TEXT,
    FieldType.SELECT: ColumnType.TEXT,
    FieldType.RADIO: ColumnType.TEXT,
    FieldType.ENUM: ColumnType.TEXT,
    FieldType.NUMBER: ColumnType.NUMERIC,
    FieldType.INTEGER: ColumnType.INTEGER,
    FieldType.BOOLEAN: ColumnType.BOOLEAN,
    FieldType.DATE: ColumnType.TIMESTAMP,
    FieldType.DATETIME: ColumnType.TIMESTAMP,
}

# Columns generated on array-item rows besides the foreign key
ARRAY_SYSTEM_COLUMNS = frozenset({"id", "sort", "created_at", "updated_at", "parent_id"})


def column_type_for(definition: FieldDefinition) -> ColumnType:
    """Logical column type of a field stored as a column."""
    if definition.type == FieldType.RELATION:
        return ColumnType.TEXT
    return FIELD_TYPE_TO_COLUMN.get(definition.type, ColumnType.TEXT)


def is_json_column(definition: FieldDefinition) -> bool:
    """Whether a column field holds serialized JSON."""
    return (
        definition.type != FieldType.RELATION
        and definition.type not in FIELD_TYPE_TO_COLUMN
    )


def _id_column() -> ColumnSpec:
    return ColumnSpec("id", ColumnType.TEXT, nullable=False, primary_key=True)


def _timestamp_column(name: str) -> ColumnSpec:
    return ColumnSpec(name, ColumnType.TIMESTAMP, nullable=False, default="CURRENT_TIMESTAMP")


def _sort_column() -> ColumnSpec:
    return ColumnSpec("sort", ColumnType.INTEGER, nullable=False, default=0)


class SchemaGenerator:
    """Builds a GeneratedSchema from a set of entity definitions.

    Generation is all-or-nothing: every problem found is collected and
    raised as a single DefinitionError, and no schema is returned.
    """

    def __init__(self) -> None:
        self._issues: list[DefinitionIssue] = []
        self._schema = GeneratedSchema()
        self._table_sources: dict[str, str] = {}
        self._definitions = DefinitionSet()

    @classmethod
    def generate(cls, definitions: DefinitionSet) -> GeneratedSchema:
        """Generate the complete schema.

        Args:
            definitions: All entity definitions of the site.

        Returns:
            The generated schema.

        Raises:
            DefinitionError: If definitions collide or reference unknown entities.
        """
        generator = cls()
        return generator._run(definitions)

    @classmethod
    def compile(cls, definitions: list[EntityDefinition]) -> GeneratedSchema:
        """Generate a schema from a flat list of (possibly resolved) definitions."""
        definition_set = DefinitionSet()
        for definition in definitions:
            definition_set.add(definition)
        return cls.generate(definition_set)

    def _run(self, definitions: DefinitionSet) -> GeneratedSchema:
        self._definitions = definitions
        configs: list[EntityConfig] = []

        for definition in definitions.all():
            fields = merge_fields(definition)
            config = EntityConfig(
                kind=definition.kind,
                slug=definition.slug,
                table=table_name_for(definition.kind, definition.slug),
                name_singular=definition.name_singular,
                name_plural=definition.name_plural,
                fields=fields,
                options=definition.options,
                description=definition.description,
                icon=definition.icon,
            )
            self._check_blocks_option(config)
            self._check_relation_targets(config.key, fields, f"{config.key}.fields")
            self._emit_entity_tables(config)
            configs.append(config)

        if self._issues:
            raise DefinitionError("Schema generation failed", self._issues)

        for config in configs:
            self._schema.entities[config.key] = config
            self._schema.types[config.key] = TypeGenerator.describe(config)

        logger.info(
            "Schema generated",
            entities=len(self._schema.entities),
            tables=len(self._schema.tables),
        )
        return self._schema

    def _issue(self, path: str, message: str, code: str) -> None:
        self._issues.append(DefinitionIssue(path, message, code))

    def _check_blocks_option(self, config: EntityConfig) -> None:
        allowed = config.options.allowed_blocks
        if not allowed:
            return
        for block_slug in allowed:
            if block_slug not in self._definitions.blocks:
                self._issue(
                    f"{config.key}.options.blocks",
                    f"Unknown block '{block_slug}'",
                    "unresolved_block",
                )

    def _check_relation_targets(self, owner: str, fields: dict[str, FieldDefinition], path: str) -> None:
        for name, definition in fields.items():
            match classify(definition):
                case RelationField(relation=relation):
                    targets = (
                        self._definitions.globals
                        if relation.target_kind == EntityKind.GLOBAL.value
                        else self._definitions.collections
                    )
                    if relation.target_slug not in targets:
                        self._issue(
                            f"{path}.{name}",
                            f"Relation target {relation.target_kind} '{relation.target_slug}' is not defined",
                            "unresolved_relation_target",
                        )
                case ArrayField(properties=properties):
                    self._check_relation_targets(owner, properties, f"{path}.{name}.items.properties")
                case _:
                    pass

    def _register_table(self, spec: TableSpec, source: str) -> None:
        existing = self._table_sources.get(spec.name)
        if existing is not None:
            self._issue(
                source,
                f"Table name '{spec.name}' collides with the table generated for {existing}",
                "table_name_collision",
            )
            return
        self._table_sources[spec.name] = source
        self._schema.add_table(spec)

    def _emit_entity_tables(self, config: EntityConfig) -> None:
        path = f"{config.key}.fields"
        columns = [_id_column(), _timestamp_column("created_at"), _timestamp_column("updated_at")]
        columns.extend(self._column_fields(config.fields, path, reserved=SYSTEM_COLUMN_NAMES))
        config.field_config.extend(self._flatten(config.fields, config.table, config.kind, nested=False))

        self._register_table(
            TableSpec(
                name=config.table,
                role=TableRole.MAIN,
                columns=tuple(columns),
                entity=config.key,
                indexes=tuple(c.name for c in columns if c.name == "parent_id"),
            ),
            config.key,
        )
        self._emit_child_tables(config.key, config.kind, config.table, config.fields, nested=False, path=path)

        if config.options.blocks_enabled and config.kind != EntityKind.BLOCK:
            foreign_key = foreign_key_column_for(config.kind, nested=False)
            self._register_table(
                TableSpec(
                    name=blocks_table_name_for(config.table),
                    role=TableRole.BLOCKS,
                    columns=(
                        _id_column(),
                        ColumnSpec(foreign_key, ColumnType.TEXT, nullable=False),
                        ColumnSpec("block_type", ColumnType.TEXT, nullable=False),
                        ColumnSpec("block_id", ColumnType.TEXT, nullable=False),
                        _sort_column(),
                        _timestamp_column("created_at"),
                        _timestamp_column("updated_at"),
                    ),
                    entity=config.key,
                    owner_table=config.table,
                    foreign_key=foreign_key,
                    field_path="blocks",
                    indexes=(foreign_key, "sort"),
                ),
                f"{config.key}.options.blocks",
            )

    def _column_fields(
        self, fields: dict[str, FieldDefinition], path: str, reserved: frozenset[str]
    ) -> list[ColumnSpec]:
        columns = []
        for name, definition in fields.items():
            if name in reserved:
                self._issue(f"{path}.{name}", f"Field name '{name}' is reserved", "reserved_field_name")
                continue
            match classify(definition):
                case ScalarField():
                    columns.append(
                        ColumnSpec(
                            name=name,
                            type=column_type_for(definition),
                            nullable=not definition.required,
                            unique=definition.unique,
                            default=definition.default if not is_json_column(definition) else None,
                            field=name,
                        )
                    )
                case RelationField(is_many=False):
                    columns.append(ColumnSpec(name=name, type=ColumnType.TEXT, field=name))
                case FileField() | ArrayField() | RelationField() | TagsField():
                    pass
        return columns

    def _emit_child_tables(
        self,
        entity: str,
        kind: EntityKind,
        owner_table: str,
        fields: dict[str, FieldDefinition],
        nested: bool,
        path: str,
        field_prefix: str = "",
    ) -> None:
        for name, definition in fields.items():
            field_path = f"{field_prefix}{name}"
            source = f"{path}.{name}"
            match classify(definition):
                case ArrayField(properties=properties):
                    table = array_table_name_for(owner_table, name)
                    foreign_key = foreign_key_column_for(kind, nested)
                    columns = [
                        _id_column(),
                        ColumnSpec(foreign_key, ColumnType.TEXT, nullable=False),
                        _sort_column(),
                        _timestamp_column("created_at"),
                        _timestamp_column("updated_at"),
                    ]
                    columns.extend(
                        self._column_fields(
                            properties,
                            f"{source}.items.properties",
                            reserved=ARRAY_SYSTEM_COLUMNS | {foreign_key},
                        )
                    )
                    self._register_table(
                        TableSpec(
                            name=table,
                            role=TableRole.ARRAY,
                            columns=tuple(columns),
                            entity=entity,
                            owner_table=owner_table,
                            foreign_key=foreign_key,
                            field_path=field_path,
                            indexes=(foreign_key, "sort"),
                        ),
                        source,
                    )
                    self._emit_child_tables(
                        entity,
                        kind,
                        table,
                        properties,
                        nested=True,
                        path=f"{source}.items.properties",
                        field_prefix=f"{field_path}.",
                    )
                case FileField():
                    self._register_table(
                        TableSpec(
                            name=file_relation_table_name_for(owner_table, name),
                            role=TableRole.FILE,
                            columns=(
                                _id_column(),
                                ColumnSpec(FILE_RELATION_FOREIGN_KEY, ColumnType.TEXT, nullable=False),
                                ColumnSpec("file_id", ColumnType.TEXT, nullable=False),
                                _sort_column(),
                                ColumnSpec("alt_override", ColumnType.TEXT),
                                _timestamp_column("created_at"),
                            ),
                            entity=entity,
                            owner_table=owner_table,
                            foreign_key=FILE_RELATION_FOREIGN_KEY,
                            field_path=field_path,
                            indexes=(FILE_RELATION_FOREIGN_KEY, "sort"),
                        ),
                        source,
                    )
                case RelationField(is_many=True, relation=relation):
                    foreign_key = foreign_key_column_for(kind, nested)
                    self._register_table(
                        TableSpec(
                            name=junction_table_name_for(kind, owner_path_for(owner_table), name),
                            role=TableRole.JUNCTION,
                            columns=(
                                _id_column(),
                                ColumnSpec(foreign_key, ColumnType.TEXT, nullable=False),
                                ColumnSpec("target_id", ColumnType.TEXT, nullable=False),
                                _timestamp_column("created_at"),
                                _timestamp_column("updated_at"),
                            ),
                            entity=entity,
                            owner_table=owner_table,
                            foreign_key=foreign_key,
                            field_path=field_path,
                            target_table=table_name_for(EntityKind(relation.target_kind), relation.target_slug),
                            indexes=(foreign_key, "target_id"),
                        ),
                        source,
                    )
                case ScalarField() | RelationField() | TagsField():
                    pass

    def _flatten(
        self,
        fields: dict[str, FieldDefinition],
        owner_table: str,
        kind: EntityKind,
        nested: bool,
        prefix: str = "",
    ) -> list[dict[str, Any]]:
        """Flattened runtime configuration of every field at every depth."""
        entries: list[dict[str, Any]] = []
        for name, definition in fields.items():
            entry: dict[str, Any] = {
                "path": f"{prefix}{name}",
                "name": name,
                "type": definition.type.value,
                "required": definition.required,
                "core": definition.core,
            }
            match classify(definition):
                case ScalarField():
                    entry.update(
                        storage="json" if is_json_column(definition) else "column",
                        table=owner_table,
                        column=name,
                    )
                    entries.append(entry)
                case RelationField(is_many=False, relation=relation):
                    entry.update(storage="column", table=owner_table, column=name, target=relation.to_dict())
                    entries.append(entry)
                case RelationField(relation=relation):
                    entry.update(
                        storage="junction",
                        table=junction_table_name_for(kind, owner_path_for(owner_table), name),
                        column=foreign_key_column_for(kind, nested),
                        target=relation.to_dict(),
                    )
                    entries.append(entry)
                case FileField(multiple=multiple):
                    entry.update(
                        storage="file",
                        table=file_relation_table_name_for(owner_table, name),
                        column=FILE_RELATION_FOREIGN_KEY,
                        multiple=multiple,
                    )
                    entries.append(entry)
                case TagsField():
                    entry.update(storage="tags", table="taggables", column=None)
                    entries.append(entry)
                case ArrayField(properties=properties):
                    table = array_table_name_for(owner_table, name)
                    entry.update(storage="array", table=table, column=foreign_key_column_for(kind, nested))
                    entries.append(entry)
                    entries.extend(self._flatten(properties, table, kind, nested=True, prefix=f"{prefix}{name}."))
        return entries
