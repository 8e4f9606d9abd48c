"""Tests for payload validation."""

import pytest

from keelson.core.exceptions import ContentValidationError
from keelson.domain.entities.field import FieldDefinition
from keelson.domain.services.payload_validator import PayloadValidator


def _fields(raw):
    return {name: FieldDefinition.from_dict(name, spec) for name, spec in raw.items()}


@pytest.fixture
def fields():
    return _fields(
        {
            "title": {"type": "string", "required": True},
            "status": {"type": "select", "required": True, "default": "draft", "options": ["draft", "published"]},
            "email": {"type": "email"},
            "homepage": {"type": "url"},
            "rating": {"type": "number"},
            "featured": {"type": "boolean"},
            "published_at": {"type": "datetime"},
            "cover": {"type": "file"},
            "gallery": {"type": "file", "multiple": True},
            "writer": {"type": "relation", "relation": {"type": "many-to-one", "targetCollection": "authors"}},
            "keywords": {"type": "tags"},
            "links": {
                "type": "array",
                "items": {"type": "object", "properties": {"label": {"type": "string", "required": True}}},
            },
        }
    )


def _codes(fields, payload, creating=True):
    return {error.field: error.code for error in PayloadValidator.collect_errors(fields, payload, creating)}


def test_valid_payload(fields):
    """Test that a payload touching every field type validates cleanly."""
    payload = {
        "title": "Hello",
        "status": "published",
        "email": "a@example.com",
        "homepage": "/about",
        "rating": "4.5",
        "featured": "on",
        "published_at": "2024-01-01T12:00:00Z",
        "cover": {"id": "file-1"},
        "gallery": ["file-1", {"id": "file-2"}],
        "writer": ["author-1"],
        "keywords": "python, sql",
        "links": [{"label": "Docs"}],
    }

    assert PayloadValidator.collect_errors(fields, payload, creating=True) == []


def test_required_missing_only_on_create(fields):
    """Test that missing required fields only fail on create."""
    assert _codes(fields, {}) == {"title": "required_missing"}
    assert _codes(fields, {}, creating=False) == {}


def test_required_empty(fields):
    """Test that a blank required value fails even on update."""
    assert _codes(fields, {"title": "  "}, creating=False) == {"title": "required_empty"}


def test_empty_optional_values_are_skipped(fields):
    """Test that empty optional values are not type-checked."""
    assert _codes(fields, {"title": "x", "email": "", "rating": None}) == {}


def test_type_errors(fields):
    """Test the error code reported for each wrongly typed value."""
    codes = _codes(
        fields,
        {
            "title": 5,
            "status": "archived",
            "email": "not-an-email",
            "homepage": "ftp://x",
            "rating": "many",
            "featured": "maybe",
            "published_at": "yesterday",
        },
    )

    assert codes == {
        "title": "invalid_type",
        "status": "invalid_choice",
        "email": "invalid_email_format",
        "homepage": "invalid_url_format",
        "rating": "invalid_type",
        "featured": "invalid_type",
        "published_at": "invalid_datetime_format",
    }


def test_reference_errors(fields):
    """Test that malformed file and relation references are reported."""
    codes = _codes(fields, {"title": "x", "gallery": "file-1", "writer": {"name": "no id"}})

    assert codes == {"gallery": "invalid_type", "writer": "invalid_reference"}


def test_invalid_list_entry_is_located(fields):
    """Test that a bad list entry is reported at its index."""
    assert _codes(fields, {"title": "x", "gallery": ["file-1", {}]}) == {"gallery[1]": "invalid_reference"}


def test_tags_errors(fields):
    """Test tag value errors."""
    assert _codes(fields, {"title": "x", "keywords": [1]}) == {"keywords[0]": "invalid_tag"}
    assert _codes(fields, {"title": "x", "keywords": 3}) == {"keywords": "invalid_type"}


def test_array_items_validated_recursively(fields):
    """Test that array items are validated with item-level paths."""
    codes = _codes(fields, {"title": "x", "links": [{"label": "ok"}, {}, "text"]})

    assert codes == {"links[1].label": "required_missing", "links[2]": "invalid_type"}


def test_duplicate_array_item_ids(fields):
    """Test that a repeated item id, after sanitizing, is reported on the later item."""
    links = [{"id": "a", "label": "one"}, {"id": " a ", "label": "two"}, {"id": 7, "label": "three"}]

    codes = _codes(fields, {"title": "x", "links": links})

    assert codes == {"links[1].id": "duplicate_id"}


def test_validate_raises_with_every_error(fields):
    """Test that validate raises with every collected error."""
    with pytest.raises(ContentValidationError) as exc_info:
        PayloadValidator.validate(fields, {"email": "bad"}, creating=True)

    assert {error.field for error in exc_info.value.errors} == {"title", "email"}
    assert "Validation failed" in str(exc_info.value)
