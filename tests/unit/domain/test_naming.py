"""Tests for the naming resolver."""

import pytest

from keelson.core.exceptions import DefinitionError
from keelson.domain.entities.definition import EntityKind
from keelson.domain.services.naming import (
    array_table_name_for,
    blocks_table_name_for,
    ensure_safe_slug,
    file_relation_table_name_for,
    foreign_key_column_for,
    junction_table_name_for,
    kind_of_table,
    owner_path_for,
    table_name_for,
    to_snake_case,
    validate_field_name,
    validate_slug,
)


class TestTableNames:
    """Tests for table-name resolution."""

    def test_main_table_per_kind(self):
        """Test the main table name for each entity kind."""
        assert table_name_for(EntityKind.COLLECTION, "posts") == "collection_posts"
        assert table_name_for(EntityKind.GLOBAL, "settings") == "global_settings"
        assert table_name_for(EntityKind.BLOCK, "hero") == "block_hero"

    def test_main_table_accepts_kind_value(self):
        """Test that a plain kind string is accepted."""
        assert table_name_for("collection", "posts") == "collection_posts"

    def test_array_table_snake_cases_field(self):
        """Test that array table names snake_case the field name."""
        assert array_table_name_for("collection_posts", "relatedLinks") == "collection_posts_related_links"

    def test_nested_array_table_encodes_depth(self):
        """Test that nested array tables append to their parent's name."""
        first = array_table_name_for("collection_posts", "sections")
        assert array_table_name_for(first, "rows") == "collection_posts_sections_rows"

    def test_file_relation_table(self):
        """Test the file-relation table name."""
        assert file_relation_table_name_for("block_hero", "heroImage") == "block_hero_hero_image"

    def test_junction_table_uses_owner_path(self):
        """Test that junction names use the owner path without the kind prefix."""
        assert junction_table_name_for(EntityKind.COLLECTION, "posts", "categories") == "junction_posts_categories"

    def test_nested_junction_table(self):
        """Test junction names for relations inside array items."""
        owner_path = owner_path_for("collection_posts_sections")
        assert owner_path == "posts_sections"
        assert junction_table_name_for(EntityKind.COLLECTION, owner_path, "links") == "junction_posts_sections_links"

    def test_blocks_table(self):
        """Test the block placement table name."""
        assert blocks_table_name_for("collection_pages") == "collection_pages_blocks"

    def test_names_are_deterministic(self):
        """Test that the same inputs always give the same names."""
        assert table_name_for(EntityKind.COLLECTION, "posts") == table_name_for(EntityKind.COLLECTION, "posts")
        assert array_table_name_for("a", "bC") == array_table_name_for("a", "bC")


class TestForeignKeys:
    """Tests for foreign-key column resolution."""

    @pytest.mark.parametrize(
        "kind,expected",
        [
            (EntityKind.COLLECTION, "collection_id"),
            (EntityKind.GLOBAL, "global_id"),
            (EntityKind.BLOCK, "block_id"),
        ],
    )
    def test_first_level_foreign_key(self, kind, expected):
        """Test the foreign key column of first-level child tables."""
        assert foreign_key_column_for(kind, nested=False) == expected

    def test_nested_foreign_key_is_parent_id(self):
        """Test that nested child tables use parent_id."""
        assert foreign_key_column_for(EntityKind.COLLECTION, nested=True) == "parent_id"
        assert foreign_key_column_for(EntityKind.BLOCK, nested=True) == "parent_id"


class TestValidation:
    """Tests for slug and field-name validation."""

    def test_valid_slug(self):
        """Test that a lowercase snake_case slug is valid."""
        assert validate_slug("blog_posts", "collection.blog_posts") == []

    def test_slug_with_uppercase_is_rejected(self):
        """Test that uppercase slugs are rejected."""
        issues = validate_slug("BlogPosts", "collection.BlogPosts")
        assert [issue.code for issue in issues] == ["slug_invalid_format"]

    def test_slug_with_injection_is_rejected(self):
        """Test that slugs carrying SQL are rejected."""
        issues = validate_slug('posts"; DROP TABLE x; --', "collection.x")
        assert issues[0].code == "slug_invalid_format"

    def test_reserved_slug(self):
        """Test that reserved slugs are rejected."""
        issues = validate_slug("types", "collection.types")
        assert "slug_reserved" in [issue.code for issue in issues]

    def test_ensure_safe_slug_raises(self):
        """Test that ensure_safe_slug raises on an invalid slug."""
        with pytest.raises(DefinitionError) as exc_info:
            ensure_safe_slug("9lives")
        assert exc_info.value.issues[0].code == "slug_invalid_format"

    def test_field_name_allows_camel_case(self):
        """Test that camelCase field names are allowed."""
        assert validate_field_name("heroImage", "fields.heroImage") == []

    def test_field_name_with_dash_is_rejected(self):
        """Test that field names with dashes are rejected."""
        issues = validate_field_name("hero-image", "fields.hero-image")
        assert issues[0].code == "field_name_invalid_format"


def test_to_snake_case():
    """Test camelCase to snake_case conversion."""
    assert to_snake_case("heroImage") == "hero_image"
    assert to_snake_case("already_snake") == "already_snake"
    assert to_snake_case("URL") == "u_r_l"


def test_kind_of_table():
    """Test mapping table names back to entity kinds."""
    assert kind_of_table("collection_posts_tags") == EntityKind.COLLECTION
    assert kind_of_table("block_hero") == EntityKind.BLOCK
    assert kind_of_table("junction_posts_categories") is None
