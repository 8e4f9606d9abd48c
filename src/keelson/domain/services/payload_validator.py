"""Payload validation service for content saves.

Checks a field-keyed payload against the resolved fields of an entity
before any row is touched. Array items are validated recursively against
their item properties.
"""

import json
import re
from datetime import date, datetime
from typing import Any

from keelson.core.exceptions import ContentValidationError, FieldError
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
from keelson.domain.services.value_coercion import (
    coerce_boolean,
    coerce_number,
    normalize_reference,
    sanitize_id,
)

# Email validation pattern (simplified but effective)
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

# Absolute http(s) URLs, or site-relative paths
URL_PATTERN = re.compile(r"^(https?://[^\s/$.?#].[^\s]*|/[^\s]*)$", re.IGNORECASE)

_TEXT_TYPES = frozenset({
    FieldType.STRING,
    FieldType.TEXT,
    FieldType.TEXTAREA,
    FieldType.WYSIWYG,
    FieldType.SLUG,
    FieldType.PASSWORD,
    FieldType.LINK,
})
_CHOICE_TYPES = frozenset({FieldType.SELECT, FieldType.RADIO, FieldType.ENUM})


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class PayloadValidator:
    """Validator for content payloads against resolved entity fields."""

    @classmethod
    def validate_text(cls, value: Any, field_name: str) -> FieldError | None:
        """Validate a text field value."""
        if not isinstance(value, str):
            return FieldError(field_name, f"Expected text value, got {type(value).__name__}", "invalid_type")
        return None

    @classmethod
    def validate_number(cls, value: Any, field_name: str) -> FieldError | None:
        """Validate a number field value; numeric strings are accepted."""
        try:
            coerce_number(value)
        except (TypeError, ValueError):
            return FieldError(field_name, f"Expected number value, got {value!r}", "invalid_type")
        return None

    @classmethod
    def validate_boolean(cls, value: Any, field_name: str) -> FieldError | None:
        """Validate a boolean field value.

        Form encodings such as "true", "0" or "on" are accepted.
        """
        try:
            coerce_boolean(value)
        except ValueError:
            return FieldError(field_name, f"Expected boolean value, got {value!r}", "invalid_type")
        return None

    @classmethod
    def validate_choice(cls, value: Any, definition: FieldDefinition, field_name: str) -> FieldError | None:
        """Validate a select/radio value against the declared options."""
        allowed = definition.option_values
        if allowed and value not in allowed:
            return FieldError(
                field_name,
                f"Value {value!r} is not one of: {', '.join(str(v) for v in allowed)}",
                "invalid_choice",
            )
        return None

    @classmethod
    def validate_datetime(cls, value: Any, field_name: str) -> FieldError | None:
        """Validate a date or datetime field value.

        Accepts ISO 8601 formatted strings, date and datetime objects.
        """
        if isinstance(value, (datetime, date)):
            return None
        if isinstance(value, str):
            try:
                datetime.fromisoformat(value.replace("Z", "+00:00"))
                return None
            except ValueError:
                return FieldError(
                    field_name,
                    "Invalid datetime format. Use ISO 8601 format (e.g., 2024-01-01T12:00:00Z)",
                    "invalid_datetime_format",
                )
        return FieldError(field_name, f"Expected datetime string, got {type(value).__name__}", "invalid_type")

    @classmethod
    def validate_email(cls, value: Any, field_name: str) -> FieldError | None:
        """Validate an email field value."""
        if not isinstance(value, str):
            return FieldError(field_name, f"Expected email string, got {type(value).__name__}", "invalid_type")
        if not EMAIL_PATTERN.match(value):
            return FieldError(field_name, "Invalid email format", "invalid_email_format")
        return None

    @classmethod
    def validate_url(cls, value: Any, field_name: str) -> FieldError | None:
        """Validate a URL field value."""
        if not isinstance(value, str):
            return FieldError(field_name, f"Expected URL string, got {type(value).__name__}", "invalid_type")
        if not URL_PATTERN.match(value):
            return FieldError(
                field_name,
                "Invalid URL format. Must start with http://, https:// or /",
                "invalid_url_format",
            )
        return None

    @classmethod
    def validate_json(cls, value: Any, field_name: str) -> FieldError | None:
        """Validate that a value can be serialized to JSON."""
        try:
            json.dumps(value)
            return None
        except (TypeError, ValueError):
            return FieldError(
                field_name,
                "Value must be JSON-serializable (dict, list, string, number, boolean, or null)",
                "invalid_json",
            )

    @classmethod
    def validate_reference(cls, value: Any, field_name: str, many: bool) -> FieldError | None:
        """Validate a relation or file reference.

        Single references accept an id, an object with `id`, or a
        one-element list of either; many-valued references accept a list.
        """
        if many:
            if not isinstance(value, (list, tuple)):
                return FieldError(field_name, f"Expected a list of references, got {type(value).__name__}", "invalid_type")
            for index, entry in enumerate(value):
                if normalize_reference(entry) is None:
                    return FieldError(f"{field_name}[{index}]", "Invalid reference", "invalid_reference")
            return None
        if isinstance(value, (list, tuple)) and not value:
            return None
        if normalize_reference(value) is None and not (isinstance(value, str) and not value.strip()):
            return FieldError(field_name, "Invalid reference", "invalid_reference")
        return None

    @classmethod
    def validate_tags(cls, value: Any, field_name: str) -> FieldError | None:
        """Validate a tags value: a list of names, objects with a name, or a comma-separated string."""
        if isinstance(value, str):
            return None
        if not isinstance(value, (list, tuple)):
            return FieldError(field_name, f"Expected a list of tags, got {type(value).__name__}", "invalid_type")
        for index, entry in enumerate(value):
            if isinstance(entry, dict):
                entry = entry.get("name")
            if not isinstance(entry, str):
                return FieldError(f"{field_name}[{index}]", "Tag must be a name", "invalid_tag")
        return None

    @classmethod
    def validate_scalar(cls, value: Any, definition: FieldDefinition, field_name: str) -> FieldError | None:
        """Validate a value stored in a column of the owning table."""
        field_type = definition.type
        if field_type in _TEXT_TYPES:
            return cls.validate_text(value, field_name)
        if field_type in (FieldType.NUMBER, FieldType.INTEGER):
            return cls.validate_number(value, field_name)
        if field_type == FieldType.BOOLEAN:
            return cls.validate_boolean(value, field_name)
        if field_type in _CHOICE_TYPES:
            return cls.validate_choice(value, definition, field_name)
        if field_type in (FieldType.DATE, FieldType.DATETIME):
            return cls.validate_datetime(value, field_name)
        if field_type == FieldType.EMAIL:
            return cls.validate_email(value, field_name)
        if field_type == FieldType.URL:
            return cls.validate_url(value, field_name)
        if field_type == FieldType.ARRAY and not isinstance(value, (list, tuple)):
            return FieldError(field_name, f"Expected a list, got {type(value).__name__}", "invalid_type")
        return cls.validate_json(value, field_name)

    @classmethod
    def duplicate_id_errors(cls, item: dict[str, Any], seen_ids: set[str], item_path: str) -> list[FieldError]:
        """Report an item whose id was already used earlier in the same list.

        Args:
            item: The list item.
            seen_ids: Ids of the earlier items; updated in place.
            item_path: Location of the item used in error messages.

        Returns:
            A duplicate_id error, or nothing.
        """
        item_id = sanitize_id(item.get("id"))
        if item_id is None:
            return []
        if item_id in seen_ids:
            return [FieldError(f"{item_path}.id", f"Duplicate item id '{item_id}'", "duplicate_id")]
        seen_ids.add(item_id)
        return []

    @classmethod
    def validate_field_value(cls, value: Any, definition: FieldDefinition, field_name: str) -> list[FieldError]:
        """Validate a single non-null field value against its definition.

        Args:
            value: The value to validate.
            definition: The field definition.
            field_name: Dotted field path used in error messages.

        Returns:
            The validation errors, empty when the value is valid.
        """
        match classify(definition):
            case ArrayField(properties=properties):
                if not isinstance(value, (list, tuple)):
                    return [FieldError(field_name, f"Expected a list of items, got {type(value).__name__}", "invalid_type")]
                errors: list[FieldError] = []
                seen_ids: set[str] = set()
                for index, item in enumerate(value):
                    item_path = f"{field_name}[{index}]"
                    if not isinstance(item, dict):
                        errors.append(FieldError(item_path, "Array item must be an object", "invalid_type"))
                        continue
                    errors.extend(cls.duplicate_id_errors(item, seen_ids, item_path))
                    errors.extend(cls.collect_errors(properties, item, creating=True, prefix=f"{item_path}."))
                return errors
            case FileField(multiple=multiple):
                error = cls.validate_reference(value, field_name, many=multiple)
            case RelationField(is_many=is_many):
                error = cls.validate_reference(value, field_name, many=is_many)
            case TagsField():
                error = cls.validate_tags(value, field_name)
            case ScalarField():
                error = cls.validate_scalar(value, definition, field_name)
        return [error] if error is not None else []

    @classmethod
    def collect_errors(
        cls,
        fields: dict[str, FieldDefinition],
        payload: dict[str, Any],
        creating: bool,
        prefix: str = "",
    ) -> list[FieldError]:
        """Validate a payload and return every error found.

        Args:
            fields: Resolved fields the payload is written against.
            payload: Field-keyed values; keys without a field are ignored.
            creating: Whether required fields must be present.
            prefix: Path prefix for nested error locations.

        Returns:
            The validation errors, empty when the payload is valid.
        """
        errors: list[FieldError] = []
        for name, definition in fields.items():
            path = f"{prefix}{name}"
            if name not in payload:
                if creating and definition.required and definition.default is None:
                    errors.append(FieldError(path, f"Required field '{name}' is missing", "required_missing"))
                continue

            value = payload[name]
            if _is_empty(value):
                if definition.required:
                    errors.append(FieldError(path, f"Required field '{name}' cannot be empty", "required_empty"))
                continue
            errors.extend(cls.validate_field_value(value, definition, path))
        return errors

    @classmethod
    def validate(cls, fields: dict[str, FieldDefinition], payload: dict[str, Any], creating: bool) -> None:
        """Validate a payload.

        Raises:
            ContentValidationError: With every error found.
        """
        errors = cls.collect_errors(fields, payload, creating)
        if errors:
            raise ContentValidationError(errors)
