"""Normalization of raw payload values.

Payloads arrive from forms and JSON clients, so ids, booleans and relation
references come in several shapes that are normalized here before they
reach a column.
"""

from typing import Any

# Raw values that mean "no id"
_EMPTY_ID_VALUES = frozenset({"", "[]", "null", "undefined", "none"})

_TRUE_VALUES = frozenset({"true", "1", "on", "yes"})
_FALSE_VALUES = frozenset({"false", "0", "off", "no", ""})


def sanitize_id(value: Any) -> str | None:
    """Normalize an id-shaped value.

    Examples:
        >>> sanitize_id("  abc ")
        'abc'
        >>> sanitize_id("undefined") is None
        True
    """
    if value is None or value is False:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    if value.lower() in _EMPTY_ID_VALUES:
        return None
    return value


def normalize_reference(value: Any) -> str | None:
    """Reduce a relation-shaped value to a bare id.

    Accepts a bare id, an object carrying `id`, or a single-element list of
    either.
    """
    if isinstance(value, (list, tuple)):
        if len(value) != 1:
            return None
        value = value[0]
    if isinstance(value, dict):
        value = value.get("id")
    return sanitize_id(value)


def reference_list(value: Any) -> list[str]:
    """Normalize a many-valued reference (ids or objects with ids) to a list of ids.

    Order is preserved and duplicates are dropped.
    """
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        value = [value]
    ids: list[str] = []
    for entry in value:
        ref = normalize_reference(entry)
        if ref is not None and ref not in ids:
            ids.append(ref)
    return ids


def coerce_boolean(value: Any) -> bool | None:
    """Normalize a boolean that may arrive as a string or number.

    Raises:
        ValueError: If the value cannot be read as a boolean.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if value in (0, 1):
            return bool(value)
        raise ValueError(f"Cannot interpret {value!r} as a boolean")
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    raise ValueError(f"Cannot interpret {value!r} as a boolean")


def coerce_number(value: Any) -> int | float | None:
    """Normalize a numeric value that may arrive as a string.

    Raises:
        ValueError: If the value is not numeric.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Cannot interpret {value!r} as a number")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            return float(text)
    raise ValueError(f"Cannot interpret {value!r} as a number")
