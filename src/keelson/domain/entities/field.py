"""Field schema model.

Describes one schema field of an entity definition and the closed set of
storage variants the loader and writer dispatch on.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from keelson.core.exceptions import DefinitionError, DefinitionIssue


class FieldType(str, Enum):
    """Supported field types for entity definitions."""

    STRING = "string"
    TEXT = "text"
    TEXTAREA = "textarea"
    WYSIWYG = "wysiwyg"
    EMAIL = "email"
    URL = "url"
    LINK = "link"
    SLUG = "slug"
    PASSWORD = "password"
    SELECT = "select"
    RADIO = "radio"
    ENUM = "enum"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    FILE = "file"
    RELATION = "relation"
    ARRAY = "array"
    OBJECT = "object"
    JSON = "json"
    TAGS = "tags"


class RelationType(str, Enum):
    """Cardinality of a relation field."""

    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_ONE = "many-to-one"
    MANY_TO_MANY = "many-to-many"


# Properties that define how a field is stored; an override never replaces them
STRUCTURAL_KEYS = frozenset({"type", "items", "relation", "multiple", "properties"})

# Keys interpreted by FieldDefinition; everything else is kept in `extra`
_KNOWN_KEYS = frozenset({
    "type",
    "title",
    "label",
    "description",
    "required",
    "unique",
    "default",
    "options",
    "multiple",
    "file",
    "items",
    "properties",
    "relation",
    "override",
    "core",
})


@dataclass
class RelationSpec:
    """Target and cardinality of a relation field."""

    type: RelationType
    target_collection: str | None = None
    target_global: str | None = None

    @property
    def is_many(self) -> bool:
        return self.type == RelationType.MANY_TO_MANY

    @property
    def target_kind(self) -> str:
        return "global" if self.target_global else "collection"

    @property
    def target_slug(self) -> str | None:
        return self.target_global or self.target_collection

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value}
        if self.target_collection:
            data["targetCollection"] = self.target_collection
        if self.target_global:
            data["targetGlobal"] = self.target_global
        return data


@dataclass
class FieldDefinition:
    """One field of an entity definition.

    Attributes:
        name: Field key inside its parent fields map.
        type: The field type.
        required: Whether a value must be provided on create.
        unique: Whether the column carries a UNIQUE constraint.
        default: Default value applied on create.
        title: Display label.
        description: Help text.
        options: Select/radio choices, strings or {label, value} objects.
        multiple: Whether a file field holds several files.
        item_type: `items.type` of an array field.
        properties: Item properties of an array field, or properties of an object.
        relation: Relation target and cardinality.
        core: Whether the field is a core/system field.
        override: Overriding properties for a core field (empty dict for `override: true`).
        extra: Presentation metadata kept verbatim.
    """

    name: str
    type: FieldType
    required: bool = False
    unique: bool = False
    default: Any = None
    title: str | None = None
    description: str | None = None
    options: list[Any] = field(default_factory=list)
    multiple: bool = False
    item_type: FieldType | None = None
    properties: dict[str, "FieldDefinition"] = field(default_factory=dict)
    relation: RelationSpec | None = None
    core: bool = False
    override: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any], path: str | None = None) -> "FieldDefinition":
        """Parse a field definition.

        Args:
            name: The field name.
            data: The raw field definition.
            path: Dotted location used in error messages.

        Returns:
            The parsed field definition.

        Raises:
            DefinitionError: If the definition is malformed.
        """
        path = path or name
        if not isinstance(data, dict):
            raise DefinitionError(
                "Invalid field definition",
                [DefinitionIssue(path, "Field definition must be an object", "field_not_object")],
            )

        field_type = _parse_type(data.get("type", FieldType.STRING.value), path)

        multiple = bool(data.get("multiple", False))
        file_options = data.get("file")
        if isinstance(file_options, dict) and file_options.get("multiple"):
            multiple = True

        item_type = None
        properties: dict[str, FieldDefinition] = {}
        items = data.get("items")
        if field_type == FieldType.ARRAY and items is not None:
            if not isinstance(items, dict):
                raise DefinitionError(
                    "Invalid field definition",
                    [DefinitionIssue(f"{path}.items", "Array items must be an object", "items_not_object")],
                )
            raw_props = items.get("properties") or {}
            item_type = _parse_type(
                items.get("type", FieldType.OBJECT.value if raw_props else FieldType.STRING.value),
                f"{path}.items",
            )
            properties = _parse_properties(raw_props, f"{path}.items.properties")
        elif field_type == FieldType.OBJECT:
            properties = _parse_properties(data.get("properties") or {}, f"{path}.properties")

        relation = None
        if field_type == FieldType.RELATION:
            relation = _parse_relation(data.get("relation"), path)

        override = data.get("override")
        if override is True:
            override = {}
        elif override in (None, False):
            override = None
        elif not isinstance(override, dict):
            raise DefinitionError(
                "Invalid field definition",
                [DefinitionIssue(f"{path}.override", "Override must be true or an object", "invalid_override")],
            )

        options = data.get("options") or []
        if not isinstance(options, list):
            raise DefinitionError(
                "Invalid field definition",
                [DefinitionIssue(f"{path}.options", "Options must be a list", "invalid_options")],
            )

        return cls(
            name=name,
            type=field_type,
            required=bool(data.get("required", False)),
            unique=bool(data.get("unique", False)),
            default=data.get("default"),
            title=data.get("title") or data.get("label"),
            description=data.get("description"),
            options=list(options),
            multiple=multiple,
            item_type=item_type,
            properties=properties,
            relation=relation,
            core=bool(data.get("core", False)),
            override=dict(override) if override is not None else None,
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the canonical definition shape.

        Only non-default properties are emitted so that the output is stable
        and round-trips through from_dict.
        """
        data: dict[str, Any] = {"type": self.type.value}
        if self.title is not None:
            data["title"] = self.title
        if self.description is not None:
            data["description"] = self.description
        if self.required:
            data["required"] = True
        if self.unique:
            data["unique"] = True
        if self.default is not None:
            data["default"] = self.default
        if self.options:
            data["options"] = list(self.options)
        if self.multiple:
            data["multiple"] = True
        if self.type == FieldType.ARRAY and self.item_type is not None:
            items: dict[str, Any] = {"type": self.item_type.value}
            if self.properties:
                items["properties"] = {n: f.to_dict() for n, f in self.properties.items()}
            data["items"] = items
        elif self.properties:
            data["properties"] = {n: f.to_dict() for n, f in self.properties.items()}
        if self.relation is not None:
            data["relation"] = self.relation.to_dict()
        if self.core:
            data["core"] = True
        if self.override is not None:
            data["override"] = dict(self.override) if self.override else True
        for key, value in self.extra.items():
            data[key] = value
        return data

    @property
    def option_values(self) -> list[str]:
        """Allowed values of a select/radio field."""
        values = []
        for option in self.options:
            if isinstance(option, dict):
                values.append(option.get("value"))
            else:
                values.append(option)
        return values


@dataclass(frozen=True)
class ScalarField:
    """A field stored as a column of its owning table."""

    definition: FieldDefinition


@dataclass(frozen=True)
class FileField:
    """A field stored in an ordered file-relation table."""

    definition: FieldDefinition

    @property
    def multiple(self) -> bool:
        return self.definition.multiple


@dataclass(frozen=True)
class ArrayField:
    """A repeatable component stored in its own array table."""

    definition: FieldDefinition

    @property
    def properties(self) -> dict[str, FieldDefinition]:
        return self.definition.properties


@dataclass(frozen=True)
class RelationField:
    """A reference to another collection or global.

    Single-valued relations are a column of the owning table; many-to-many
    relations live in a junction table.
    """

    definition: FieldDefinition
    relation: RelationSpec

    @property
    def is_many(self) -> bool:
        return self.relation.is_many


@dataclass(frozen=True)
class TagsField:
    """Entity-level keyword tags, persisted by the tag service."""

    definition: FieldDefinition


FieldKind = ScalarField | FileField | ArrayField | RelationField | TagsField


def classify(definition: FieldDefinition) -> FieldKind:
    """Map a field definition to its storage variant.

    An array whose items are not objects with properties is not decomposed
    into a table and is stored as a JSON column.
    """
    if definition.type == FieldType.FILE:
        return FileField(definition)
    if (
        definition.type == FieldType.ARRAY
        and definition.item_type == FieldType.OBJECT
        and definition.properties
    ):
        return ArrayField(definition)
    if definition.type == FieldType.RELATION and definition.relation is not None:
        return RelationField(definition, definition.relation)
    if definition.type == FieldType.TAGS:
        return TagsField(definition)
    return ScalarField(definition)


def _parse_type(value: Any, path: str) -> FieldType:
    try:
        return FieldType(str(value).lower())
    except ValueError:
        raise DefinitionError(
            "Invalid field definition",
            [DefinitionIssue(path, f"Unknown field type '{value}'", "invalid_type")],
        ) from None


def _parse_properties(raw: Any, path: str) -> dict[str, FieldDefinition]:
    if not isinstance(raw, dict):
        raise DefinitionError(
            "Invalid field definition",
            [DefinitionIssue(path, "Properties must be an object", "properties_not_object")],
        )
    return {
        prop_name: FieldDefinition.from_dict(prop_name, prop_def, f"{path}.{prop_name}")
        for prop_name, prop_def in raw.items()
    }


def _parse_relation(raw: Any, path: str) -> RelationSpec:
    if not isinstance(raw, dict):
        raise DefinitionError(
            "Invalid field definition",
            [DefinitionIssue(f"{path}.relation", "Relation fields require a relation object", "relation_required")],
        )
    try:
        relation_type = RelationType(raw.get("type", RelationType.MANY_TO_ONE.value))
    except ValueError:
        raise DefinitionError(
            "Invalid field definition",
            [DefinitionIssue(f"{path}.relation.type", f"Unknown relation type '{raw.get('type')}'", "invalid_relation_type")],
        ) from None

    target_collection = raw.get("targetCollection")
    target_global = raw.get("targetGlobal")
    if bool(target_collection) == bool(target_global):
        raise DefinitionError(
            "Invalid field definition",
            [
                DefinitionIssue(
                    f"{path}.relation",
                    "Relation must declare exactly one of targetCollection or targetGlobal",
                    "relation_target_required",
                )
            ],
        )
    return RelationSpec(
        type=relation_type,
        target_collection=target_collection,
        target_global=target_global,
    )
