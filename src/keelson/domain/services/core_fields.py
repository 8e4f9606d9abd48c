"""Core, block and SEO fields and their merge with user-declared fields."""

from typing import Any

from keelson.core.logging import get_logger
from keelson.domain.entities.definition import EntityDefinition, EntityKind
from keelson.domain.entities.field import STRUCTURAL_KEYS, FieldDefinition

logger = get_logger(__name__)

STATUS_OPTIONS = [
    {"label": "Draft", "value": "draft"},
    {"label": "Published", "value": "published"},
    {"label": "Private", "value": "private"},
    {"label": "Archived", "value": "archived"},
]

CORE_FIELDS: dict[str, dict[str, Any]] = {
    "title": {"type": "string", "title": "Title", "required": True, "core": True},
    "slug": {"type": "string", "title": "Slug", "required": True, "unique": True, "core": True},
    "status": {
        "type": "select",
        "title": "Status",
        "required": True,
        "default": "draft",
        "options": STATUS_OPTIONS,
        "core": True,
    },
    "author": {"type": "string", "title": "Author", "core": True},
    "sort": {"type": "number", "title": "Sort", "default": 0, "core": True},
    "parent_id": {"type": "string", "title": "Parent", "core": True},
    "last_modified_by": {"type": "string", "title": "Last Modified By", "core": True},
}

BLOCK_CORE_FIELDS: dict[str, dict[str, Any]] = {
    "title": {"type": "string", "title": "Title", "core": True},
    "sort": {"type": "number", "title": "Sort", "required": True, "default": 0, "core": True},
}

AUDIT_FIELDS: dict[str, dict[str, Any]] = {
    "last_modified_by": CORE_FIELDS["last_modified_by"],
}

SEO_FIELDS: dict[str, dict[str, Any]] = {
    "meta_title": {"type": "string", "title": "Meta Title", "core": True},
    "meta_description": {"type": "textarea", "title": "Meta Description", "core": True},
    "og_title": {"type": "string", "title": "Open Graph Title", "core": True},
    "og_description": {"type": "textarea", "title": "Open Graph Description", "core": True},
    "og_image": {"type": "file", "title": "Open Graph Image", "core": True},
    "canonical_url": {"type": "url", "title": "Canonical URL", "core": True},
    "noindex": {"type": "boolean", "title": "Hide from search engines", "default": False, "core": True},
}

# Columns every generated main table carries, never declared as fields
SYSTEM_COLUMN_NAMES = frozenset({"id", "created_at", "updated_at"})


def core_fields_for(definition: EntityDefinition) -> dict[str, dict[str, Any]]:
    """Core/system fields implied by an entity's kind and options."""
    if definition.kind == EntityKind.BLOCK:
        base = dict(BLOCK_CORE_FIELDS)
    elif definition.is_flat_global:
        base = dict(AUDIT_FIELDS)
    else:
        base = dict(CORE_FIELDS)

    if definition.options.seo and definition.kind != EntityKind.BLOCK:
        base.update(SEO_FIELDS)
    return base


def merge_field(name: str, core: dict[str, Any], user: FieldDefinition, entity_key: str) -> FieldDefinition:
    """Merge a user field with the core field of the same name.

    With `override`, the user's non-structural properties replace the core
    field's; type, items, relation and cardinality stay those of the core
    field, and the field stays core. Without `override` the user field
    replaces the core field wholesale (legacy behavior).
    """
    if user.override is not None:
        overrides = user.override or {
            key: value for key, value in user.to_dict().items() if key not in ("override", "core")
        }
        merged = dict(core)
        merged.update({k: v for k, v in overrides.items() if k not in STRUCTURAL_KEYS and k != "core"})
        merged["core"] = True
        return FieldDefinition.from_dict(name, merged)

    logger.warning(
        "Field replaces core field without override; this legacy behavior is deprecated",
        entity=entity_key,
        field=name,
    )
    merged = {**core, **{k: v for k, v in user.to_dict().items() if k != "override"}}
    merged["core"] = True
    return FieldDefinition.from_dict(name, merged)


def merge_fields(definition: EntityDefinition) -> dict[str, FieldDefinition]:
    """Resolve the complete field map of an entity.

    Core fields come first in their canonical order, followed by user
    fields in declaration order. Definitions loaded from the type registry
    are already resolved and returned unchanged.

    Args:
        definition: The entity definition.

    Returns:
        The resolved field map.
    """
    if definition.resolved:
        return dict(definition.fields)

    core = core_fields_for(definition)
    resolved: dict[str, FieldDefinition] = {}

    for name, core_def in core.items():
        user_field = definition.fields.get(name)
        if user_field is None:
            resolved[name] = FieldDefinition.from_dict(name, core_def)
        else:
            resolved[name] = merge_field(name, core_def, user_field, definition.key)

    for name, user_field in definition.fields.items():
        if name in resolved:
            continue
        if user_field.override is not None:
            # Nothing to override; keep the field as declared
            user_field = FieldDefinition.from_dict(
                name, {k: v for k, v in user_field.to_dict().items() if k != "override"}
            )
        resolved[name] = user_field

    return resolved
