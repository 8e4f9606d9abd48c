"""Compiled schema: resolved entities and the table-handle map."""

import json
from dataclasses import dataclass, field
from typing import Any

from keelson.core.exceptions import SchemaMismatchError
from keelson.domain.entities.definition import (
    EntityKind,
    EntityOptions,
    entity_key,
)
from keelson.domain.entities.field import FieldDefinition
from keelson.domain.entities.table import TableRole, TableSpec


@dataclass
class EntityConfig:
    """An entity with its resolved fields and main table.

    Attributes:
        kind: The entity kind.
        slug: The entity slug.
        table: Main table name.
        fields: Resolved fields (core merged with user fields).
        options: Feature flags.
        field_config: Flattened runtime field configuration.
    """

    kind: EntityKind
    slug: str
    table: str
    name_singular: str
    name_plural: str
    fields: dict[str, FieldDefinition]
    options: EntityOptions = field(default_factory=EntityOptions)
    description: str | None = None
    icon: str | None = None
    field_config: list[dict[str, Any]] = field(default_factory=list)

    @property
    def key(self) -> str:
        return entity_key(self.kind, self.slug)

    def schema_dict(self) -> dict[str, Any]:
        """Resolved fields in their serialized definition shape."""
        return {name: definition.to_dict() for name, definition in self.fields.items()}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.kind.value,
            "slug": self.slug,
            "table": self.table,
            "name": {"singular": self.name_singular, "plural": self.name_plural},
            "fields": self.schema_dict(),
            "options": self.options.to_dict(),
            "fieldConfig": self.field_config,
        }
        if self.description:
            data["description"] = self.description
        if self.icon:
            data["icon"] = self.icon
        return data


@dataclass
class GeneratedSchema:
    """Output of the schema generator.

    Every table lookup at runtime goes through the `tables` map built here,
    keyed by physical table name.
    """

    entities: dict[str, EntityConfig] = field(default_factory=dict)
    tables: dict[str, TableSpec] = field(default_factory=dict)
    types: dict[str, dict[str, Any]] = field(default_factory=dict)
    _children: dict[str, list[TableSpec]] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._reindex()

    def _reindex(self) -> None:
        self._children = {}
        for spec in self.tables.values():
            if spec.owner_table:
                self._children.setdefault(spec.owner_table, []).append(spec)

    def add_table(self, spec: TableSpec) -> None:
        self.tables[spec.name] = spec
        if spec.owner_table:
            self._children.setdefault(spec.owner_table, []).append(spec)

    def find_entity(self, kind: EntityKind | str, slug: str) -> EntityConfig | None:
        return self.entities.get(entity_key(kind, slug))

    def entity(self, kind: EntityKind | str, slug: str) -> EntityConfig:
        """Get an entity, raising SchemaMismatchError when it is not described."""
        config = self.find_entity(kind, slug)
        if config is None:
            kind_value = kind.value if isinstance(kind, EntityKind) else kind
            raise SchemaMismatchError(f"Unknown {kind_value} '{slug}'")
        return config

    def table(self, name: str) -> TableSpec:
        """Get a table, raising SchemaMismatchError when it is not described."""
        spec = self.tables.get(name)
        if spec is None:
            raise SchemaMismatchError(f"Table '{name}' is not described by the schema")
        return spec

    def child_tables(self, owner_table: str) -> list[TableSpec]:
        """Tables whose rows are owned by rows of owner_table."""
        return list(self._children.get(owner_table, []))

    def junctions_targeting(self, target_table: str) -> list[TableSpec]:
        """Junction tables whose relation points at target_table."""
        return [
            spec
            for spec in self.tables.values()
            if spec.role == TableRole.JUNCTION and spec.target_table == target_table
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "entities": {key: config.to_dict() for key, config in self.entities.items()},
            "tables": [spec.to_dict() for spec in self.tables.values()],
            "types": self.types,
        }

    def to_json(self) -> str:
        """Canonical JSON rendering, byte-identical for unchanged definitions."""
        return json.dumps(self.to_dict(), indent=2, sort_keys=True, ensure_ascii=False) + "\n"
