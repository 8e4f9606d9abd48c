"""Physical table specifications produced by the schema generator."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ColumnType(str, Enum):
    """Logical column types, mapped to SQL per dialect by the table builder."""

    TEXT = "text"
    NUMERIC = "numeric"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"


class TableRole(str, Enum):
    """What a generated table materializes."""

    MAIN = "main"
    ARRAY = "array"
    FILE = "file"
    JUNCTION = "junction"
    BLOCKS = "blocks"


@dataclass(frozen=True)
class ColumnSpec:
    """One column of a generated table."""

    name: str
    type: ColumnType
    nullable: bool = True
    primary_key: bool = False
    unique: bool = False
    default: Any = None
    field: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "type": self.type.value, "nullable": self.nullable}
        if self.primary_key:
            data["primaryKey"] = True
        if self.unique:
            data["unique"] = True
        if self.default is not None:
            data["default"] = self.default
        if self.field is not None:
            data["field"] = self.field
        return data


@dataclass(frozen=True)
class TableSpec:
    """A generated table.

    Attributes:
        name: Physical table name.
        role: What the table materializes.
        columns: Ordered columns.
        entity: Registry key of the owning entity.
        owner_table: Table whose rows own this table's rows (child tables only).
        foreign_key: Column referencing the owner row (child tables only).
        field_path: Dotted path of the field the table materializes.
        target_table: Main table of the relation target (junction tables only).
    """

    name: str
    role: TableRole
    columns: tuple[ColumnSpec, ...]
    entity: str
    owner_table: str | None = None
    foreign_key: str | None = None
    field_path: str | None = None
    target_table: str | None = None
    indexes: tuple[str, ...] = field(default=())

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    def has_column(self, name: str) -> bool:
        return any(column.name == name for column in self.columns)

    def column(self, name: str) -> ColumnSpec | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "role": self.role.value,
            "entity": self.entity,
            "columns": [column.to_dict() for column in self.columns],
        }
        if self.owner_table:
            data["ownerTable"] = self.owner_table
        if self.foreign_key:
            data["foreignKey"] = self.foreign_key
        if self.field_path:
            data["fieldPath"] = self.field_path
        if self.target_table:
            data["targetTable"] = self.target_table
        if self.indexes:
            data["indexes"] = list(self.indexes)
        return data
