"""Entity definitions for collections, globals and blocks.

An entity definition is a named schema authored once per site. Its slug is
the sole key used to resolve physical table names.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from keelson.domain.entities.field import FieldDefinition


class EntityKind(str, Enum):
    """The three kinds of entity a site can define."""

    COLLECTION = "collection"
    GLOBAL = "global"
    BLOCK = "block"


class GlobalDataType(str, Enum):
    """Data shape of a global."""

    FLAT = "flat"
    REPEATABLE = "repeatable"
    RELATIONAL = "relational"


@dataclass
class EntityOptions:
    """Feature flags of an entity definition.

    Attributes:
        seo: Append SEO fields.
        nestable: Items form a parent/child hierarchy through parent_id.
        base_path: URL prefix used when deriving item URLs.
        blocks: Whether blocks can be placed inline; a list restricts the allowed block slugs.
        data_type: Data shape for globals.
        extra: Other options kept verbatim.
    """

    seo: bool = False
    nestable: bool = False
    base_path: str | None = None
    blocks: bool | list[str] = False
    data_type: GlobalDataType | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def blocks_enabled(self) -> bool:
        return bool(self.blocks)

    @property
    def allowed_blocks(self) -> list[str] | None:
        """Allowed block slugs, or None when every block is allowed."""
        if isinstance(self.blocks, list):
            return list(self.blocks)
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None, data_type: GlobalDataType | None = None) -> "EntityOptions":
        data = dict(data or {})
        blocks = data.pop("blocks", False)
        if isinstance(blocks, dict):
            blocks = sorted(blocks.keys()) or bool(blocks)
        elif not isinstance(blocks, list):
            blocks = bool(blocks)
        raw_type = data.pop("dataType", None) or data.pop("data_type", None)
        return cls(
            seo=bool(data.pop("seo", False)),
            nestable=bool(data.pop("nestable", False)),
            base_path=data.pop("basePath", None) or data.pop("base_path", None),
            blocks=blocks,
            data_type=data_type or (GlobalDataType(raw_type) if raw_type else None),
            extra=data,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        if self.seo:
            data["seo"] = True
        if self.nestable:
            data["nestable"] = True
        if self.base_path:
            data["basePath"] = self.base_path
        if self.blocks:
            data["blocks"] = list(self.blocks) if isinstance(self.blocks, list) else True
        if self.data_type is not None:
            data["dataType"] = self.data_type.value
        return data


@dataclass
class EntityDefinition:
    """A collection, global or block definition.

    Attributes:
        kind: The entity kind.
        slug: Stable identifier, also the physical table suffix.
        name_singular: Singular display name.
        name_plural: Plural display name.
        description: Optional description.
        icon: Optional icon name.
        fields: User-declared fields, or resolved fields when `resolved` is set.
        options: Feature flags.
        resolved: Fields already include merged core fields (loaded from the registry).
    """

    kind: EntityKind
    slug: str
    name_singular: str
    name_plural: str
    fields: dict[str, FieldDefinition] = field(default_factory=dict)
    options: EntityOptions = field(default_factory=EntityOptions)
    description: str | None = None
    icon: str | None = None
    resolved: bool = False

    @property
    def key(self) -> str:
        """Registry key of the entity, e.g. 'collection:posts'."""
        return entity_key(self.kind, self.slug)

    @property
    def data_type(self) -> GlobalDataType | None:
        if self.kind != EntityKind.GLOBAL:
            return None
        return self.options.data_type or GlobalDataType.REPEATABLE

    @property
    def is_flat_global(self) -> bool:
        return self.data_type == GlobalDataType.FLAT


@dataclass
class DefinitionSet:
    """All entity definitions of a site, keyed by slug within each kind."""

    collections: dict[str, EntityDefinition] = field(default_factory=dict)
    globals: dict[str, EntityDefinition] = field(default_factory=dict)
    blocks: dict[str, EntityDefinition] = field(default_factory=dict)

    def of_kind(self, kind: EntityKind) -> dict[str, EntityDefinition]:
        if kind == EntityKind.COLLECTION:
            return self.collections
        if kind == EntityKind.GLOBAL:
            return self.globals
        return self.blocks

    def all(self) -> list[EntityDefinition]:
        """Every definition, ordered by kind then slug."""
        result = []
        for kind in EntityKind:
            group = self.of_kind(kind)
            result.extend(group[slug] for slug in sorted(group))
        return result

    def add(self, definition: EntityDefinition) -> None:
        self.of_kind(definition.kind)[definition.slug] = definition

    def get(self, kind: EntityKind, slug: str) -> EntityDefinition | None:
        return self.of_kind(kind).get(slug)


def entity_key(kind: EntityKind | str, slug: str) -> str:
    """Build the key identifying an entity across kinds."""
    kind_value = kind.value if isinstance(kind, EntityKind) else kind
    return f"{kind_value}:{slug}"
