"""Naming resolver for generated tables and columns.

Deterministic mapping from entity kind, slug and field path to physical
table names, foreign-key columns and junction tables. The schema generator,
the content loader and the content writer all resolve names through these
functions so they never disagree.
"""

import re

from keelson.core.exceptions import DefinitionError, DefinitionIssue
from keelson.domain.entities.definition import EntityKind

# Slugs become table-name suffixes
SLUG_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")

# Field names become column names or table-name segments after snake-casing
FIELD_NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")

MAX_IDENTIFIER_LENGTH = 48

# Slugs whose main table would collide with the type registry tables
RESERVED_SLUGS = frozenset({"types"})

_TABLE_PREFIXES = {
    EntityKind.COLLECTION: "collection",
    EntityKind.GLOBAL: "global",
    EntityKind.BLOCK: "block",
}

_CAPITAL = re.compile(r"([A-Z])")


def to_snake_case(value: str) -> str:
    """Convert a camelCase name to snake_case.

    Examples:
        >>> to_snake_case("heroImage")
        'hero_image'
        >>> to_snake_case("already_snake")
        'already_snake'
    """
    return _CAPITAL.sub(r"_\1", value).lower().lstrip("_")


def validate_slug(slug: str, path: str) -> list[DefinitionIssue]:
    """Check that a slug is safe to embed in identifiers."""
    if not isinstance(slug, str) or not slug:
        return [DefinitionIssue(path, "Slug is required", "slug_required")]
    issues = []
    if not SLUG_PATTERN.match(slug):
        issues.append(
            DefinitionIssue(
                path,
                f"Slug '{slug}' must start with a lowercase letter and contain only lowercase letters, digits and underscores",
                "slug_invalid_format",
            )
        )
    if len(slug) > MAX_IDENTIFIER_LENGTH:
        issues.append(
            DefinitionIssue(path, f"Slug must be at most {MAX_IDENTIFIER_LENGTH} characters", "slug_too_long")
        )
    if slug in RESERVED_SLUGS:
        issues.append(DefinitionIssue(path, f"Slug '{slug}' is reserved", "slug_reserved"))
    return issues


def validate_field_name(name: str, path: str) -> list[DefinitionIssue]:
    """Check that a field name is safe to use as a column or table segment."""
    if not isinstance(name, str) or not name:
        return [DefinitionIssue(path, "Field name is required", "field_name_required")]
    issues = []
    if not FIELD_NAME_PATTERN.match(name):
        issues.append(
            DefinitionIssue(
                path,
                f"Field name '{name}' must start with a letter and contain only letters, digits and underscores",
                "field_name_invalid_format",
            )
        )
    if len(name) > MAX_IDENTIFIER_LENGTH:
        issues.append(
            DefinitionIssue(path, f"Field name must be at most {MAX_IDENTIFIER_LENGTH} characters", "field_name_too_long")
        )
    return issues


def ensure_safe_slug(slug: str, path: str = "slug") -> str:
    """Return the slug, raising DefinitionError if it is unsafe."""
    issues = validate_slug(slug, path)
    if issues:
        raise DefinitionError("Invalid slug", issues)
    return slug


def table_name_for(kind: EntityKind, slug: str) -> str:
    """Main table of an entity, e.g. 'collection_posts'."""
    return f"{_TABLE_PREFIXES[EntityKind(kind)]}_{slug}"


def array_table_name_for(parent_table: str, field_name: str) -> str:
    """Array table of a repeatable field.

    Nested arrays pass the parent array table, so depth is encoded in the
    resulting name.
    """
    return f"{parent_table}_{to_snake_case(field_name)}"


def file_relation_table_name_for(owner_table: str, field_name: str) -> str:
    """Ordered file-relation table of a file field."""
    return f"{owner_table}_{to_snake_case(field_name)}"


def owner_path_for(owner_table: str) -> str:
    """Strip the kind prefix from a table name ('collection_posts_tags' -> 'posts_tags')."""
    for prefix in _TABLE_PREFIXES.values():
        if owner_table.startswith(prefix + "_"):
            return owner_table[len(prefix) + 1:]
    return owner_table


def junction_table_name_for(owner_kind: EntityKind, owner_path: str, field_name: str) -> str:
    """Junction table of a many-to-many relation, e.g. 'junction_posts_categories'.

    The owner kind is not encoded in the name; collisions across kinds are
    rejected when the schema is generated.
    """
    return f"junction_{owner_path}_{to_snake_case(field_name)}"


def blocks_table_name_for(owner_table: str) -> str:
    """Placement table linking an owner row to its ordered blocks."""
    return f"{owner_table}_blocks"


def foreign_key_column_for(owner_kind: EntityKind, nested: bool) -> str:
    """Foreign-key column pointing at the owning row.

    First-level child tables reference the entity row through
    `block_id`, `global_id` or `collection_id`; deeper levels use `parent_id`.
    """
    if nested:
        return "parent_id"
    return f"{_TABLE_PREFIXES[EntityKind(owner_kind)]}_id"


# File-relation rows always reference their owner through parent_id
FILE_RELATION_FOREIGN_KEY = "parent_id"


def kind_of_table(table_name: str) -> EntityKind | None:
    """Entity kind encoded in a generated table name, if any."""
    for kind, prefix in _TABLE_PREFIXES.items():
        if table_name.startswith(prefix + "_"):
            return kind
    return None
