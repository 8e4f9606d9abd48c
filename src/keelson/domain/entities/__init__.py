"""Domain entities for Keelson.

Entities are pure Python dataclasses describing definitions, fields,
generated tables and operation results. They have no dependencies on
infrastructure or external frameworks.
"""

from keelson.domain.entities.definition import (
    DefinitionSet,
    EntityDefinition,
    EntityKind,
    EntityOptions,
    GlobalDataType,
    entity_key,
)
from keelson.domain.entities.field import (
    ArrayField,
    FieldDefinition,
    FieldKind,
    FieldType,
    FileField,
    RelationField,
    RelationSpec,
    RelationType,
    ScalarField,
    TagsField,
    classify,
)
from keelson.domain.entities.file import FileRecord
from keelson.domain.entities.result import ItemListResult, OperationResult, Pagination
from keelson.domain.entities.schema import EntityConfig, GeneratedSchema
from keelson.domain.entities.table import ColumnSpec, ColumnType, TableRole, TableSpec

__all__ = [
    "ArrayField",
    "ColumnSpec",
    "ColumnType",
    "DefinitionSet",
    "EntityConfig",
    "EntityDefinition",
    "EntityKind",
    "EntityOptions",
    "FieldDefinition",
    "FieldKind",
    "FieldType",
    "FileField",
    "FileRecord",
    "GeneratedSchema",
    "GlobalDataType",
    "ItemListResult",
    "OperationResult",
    "Pagination",
    "RelationField",
    "RelationSpec",
    "RelationType",
    "ScalarField",
    "TableRole",
    "TableSpec",
    "TagsField",
    "classify",
    "entity_key",
]
