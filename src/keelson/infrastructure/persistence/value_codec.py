"""Conversion between field values and their column representation."""

import json
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from keelson.domain.entities.field import FieldDefinition, FieldType, RelationField, classify
from keelson.domain.services.value_coercion import (
    coerce_boolean,
    coerce_number,
    normalize_reference,
)
from keelson.infrastructure.persistence.schema_generator import is_json_column

_TEMPORAL_TYPES = frozenset({FieldType.DATE, FieldType.DATETIME})


class ValueCodec:
    """Encodes field values for a dialect and decodes rows back.

    Booleans are stored as 0/1 on SQLite and natively elsewhere; JSON-shaped
    values are stored as serialized text.
    """

    def __init__(self, dialect: str = "sqlite") -> None:
        self.dialect = dialect

    def encode(self, definition: FieldDefinition, value: Any) -> Any:
        """Encode one value for its column.

        Raises:
            ValueError: If the value cannot be converted to the column type.
        """
        if isinstance(classify(definition), RelationField):
            return normalize_reference(value)
        if value is None:
            return None
        if definition.type == FieldType.BOOLEAN:
            flag = coerce_boolean(value)
            if flag is None or self.dialect == "postgresql":
                return flag
            return 1 if flag else 0
        if definition.type == FieldType.NUMBER:
            return coerce_number(value)
        if definition.type == FieldType.INTEGER:
            number = coerce_number(value)
            return int(number) if number is not None else None
        if definition.type in _TEMPORAL_TYPES:
            return self._encode_temporal(value)
        if is_json_column(definition):
            return json.dumps(value, ensure_ascii=False)
        return value

    def _encode_temporal(self, value: Any) -> Any:
        if value == "":
            return None
        if self.dialect == "postgresql":
            if isinstance(value, str):
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            return value
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        return value

    def timestamp(self, offset_microseconds: int = 0) -> Any:
        """Current UTC time in the column representation of the dialect.

        Args:
            offset_microseconds: Shift added to the current time, used to give
                rows written in one save a strictly increasing order.
        """
        moment = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(microseconds=offset_microseconds)
        if self.dialect == "postgresql":
            return moment
        return moment.isoformat(sep=" ")

    def decode(self, definition: FieldDefinition, value: Any) -> Any:
        """Decode one column value back to its field representation."""
        if value is None:
            return None
        if definition.type == FieldType.BOOLEAN:
            return bool(value)
        if definition.type in (FieldType.NUMBER, FieldType.INTEGER):
            if isinstance(value, Decimal):
                return int(value) if value == value.to_integral_value() else float(value)
            return value
        if is_json_column(definition) and isinstance(value, str):
            try:
                return json.loads(value)
            except (json.JSONDecodeError, TypeError):
                return value
        return value

    def decode_row(self, fields: dict[str, FieldDefinition], row: dict[str, Any]) -> dict[str, Any]:
        """Decode every known column of a row in place and return it."""
        for key, value in list(row.items()):
            definition = fields.get(key)
            if definition is not None:
                row[key] = self.decode(definition, value)
        return row
