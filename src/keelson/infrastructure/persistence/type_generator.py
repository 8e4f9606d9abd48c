"""Language-level type descriptions for generated entities.

Each entity becomes a pydantic model built with `create_model`; array items
become nested models. The published description is the model's JSON Schema.
"""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, create_model

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
from keelson.domain.entities.schema import EntityConfig

_SCALAR_ANNOTATIONS: dict[FieldType, Any] = {
    FieldType.NUMBER: float,
    FieldType.INTEGER: int,
    FieldType.BOOLEAN: bool,
    FieldType.DATE: date,
    FieldType.DATETIME: datetime,
    FieldType.OBJECT: dict[str, Any],
    FieldType.JSON: Any,
}

_CHOICE_TYPES = frozenset({FieldType.SELECT, FieldType.RADIO, FieldType.ENUM})


class FileReference(BaseModel):
    """A resolved file record as returned by the content loader."""

    model_config = ConfigDict(extra="allow")

    id: str
    url: str | None = None
    path: str | None = None
    mime_type: str | None = None
    alt: str | None = None


def _pascal_case(value: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in value.replace("-", "_").split("_") if part)


class TypeGenerator:
    """Builds pydantic models and JSON Schema descriptions for entities."""

    @classmethod
    def model_for(cls, config: EntityConfig) -> type[BaseModel]:
        """Build the pydantic model describing a loaded item of an entity."""
        system = {
            "id": (str, ...),
            "created_at": (datetime | None, None),
            "updated_at": (datetime | None, None),
        }
        return cls._build_model(_pascal_case(config.table), config.fields, system)

    @classmethod
    def describe(cls, config: EntityConfig) -> dict[str, Any]:
        """JSON Schema of an entity's loaded item shape."""
        return cls.model_for(config).model_json_schema()

    @classmethod
    def _build_model(
        cls,
        model_name: str,
        fields: dict[str, FieldDefinition],
        system: dict[str, tuple[Any, Any]],
    ) -> type[BaseModel]:
        definitions: dict[str, Any] = dict(system)
        for name, definition in fields.items():
            if name in definitions:
                continue
            annotation = cls._annotation(model_name, name, definition)
            definitions[name] = (annotation, cls._default(definition))
        return create_model(
            model_name,
            __config__=ConfigDict(extra="allow", protected_namespaces=()),
            **definitions,
        )

    @classmethod
    def _default(cls, definition: FieldDefinition) -> Any:
        description = definition.title or definition.description
        if definition.default is not None:
            return Field(default=definition.default, description=description)
        if definition.required:
            return Field(default=..., description=description)
        return Field(default=None, description=description)

    @classmethod
    def _annotation(cls, model_name: str, name: str, definition: FieldDefinition) -> Any:
        match classify(definition):
            case FileField(multiple=True):
                return list[FileReference]
            case FileField():
                return FileReference | None
            case ArrayField(properties=properties):
                item_model = cls._build_model(
                    f"{model_name}{_pascal_case(name)}Item",
                    properties,
                    {"id": (str | None, None), "sort": (int | None, None)},
                )
                return list[item_model]
            case RelationField(is_many=True):
                return list[dict[str, Any]]
            case RelationField():
                return str | dict[str, Any] | None
            case TagsField():
                return list[str]
            case ScalarField():
                return cls._scalar_annotation(definition)

    @classmethod
    def _scalar_annotation(cls, definition: FieldDefinition) -> Any:
        if definition.type in _CHOICE_TYPES and definition.option_values:
            choices = tuple(str(value) for value in definition.option_values)
            annotation: Any = Literal[choices]
        elif definition.type == FieldType.ARRAY:
            annotation = list[Any]
        else:
            annotation = _SCALAR_ANNOTATIONS.get(definition.type, str)
        if definition.required or definition.default is not None:
            return annotation
        return annotation | None
