"""Tests for the schema generator."""

import pytest

from keelson.core.exceptions import DefinitionError
from keelson.domain.entities.table import ColumnType, TableRole
from keelson.domain.services.definition_loader import DefinitionLoader
from keelson.infrastructure.persistence.schema_generator import SchemaGenerator


def _generate(raw):
    return SchemaGenerator.generate(DefinitionLoader.load_dict(raw))


def test_generates_every_table(schema):
    """Test that the sample definitions produce every expected table."""
    assert set(schema.tables) == {
        "collection_authors",
        "collection_categories",
        "collection_posts",
        "collection_posts_tags",
        "collection_posts_cover",
        "collection_posts_gallery",
        "collection_posts_sections",
        "collection_posts_sections_rows",
        "junction_posts_categories",
        "collection_posts_blocks",
        "global_settings",
        "block_hero",
        "block_hero_image",
    }


def test_main_table_columns(schema):
    """Core and column fields are on the main table; child fields are not."""
    posts = schema.table("collection_posts")

    assert posts.role == TableRole.MAIN
    assert posts.column_names[:3] == ["id", "created_at", "updated_at"]
    for column in ("title", "slug", "status", "author", "sort", "parent_id", "last_modified_by", "writer"):
        assert posts.has_column(column)
    for child_field in ("tags", "cover", "gallery", "sections", "categories", "keywords"):
        assert not posts.has_column(child_field)
    assert posts.column("slug").unique is True
    assert posts.column("title").nullable is False
    assert posts.column("rating").type == ColumnType.NUMERIC
    assert posts.column("featured").type == ColumnType.BOOLEAN


def test_array_tables_use_foreign_key_by_depth(schema):
    """Top-level array tables use collection_id and nested ones use parent_id."""
    tags = schema.table("collection_posts_tags")
    rows = schema.table("collection_posts_sections_rows")

    assert tags.role == TableRole.ARRAY
    assert tags.foreign_key == "collection_id"
    assert tags.owner_table == "collection_posts"
    assert tags.has_column("label")
    assert rows.foreign_key == "parent_id"
    assert rows.owner_table == "collection_posts_sections"
    assert rows.field_path == "sections.rows"


def test_file_table_shape(schema):
    """Test the columns of a file-relation table."""
    cover = schema.table("collection_posts_cover")

    assert cover.role == TableRole.FILE
    assert cover.foreign_key == "parent_id"
    assert cover.column_names == ["id", "parent_id", "file_id", "sort", "alt_override", "created_at"]


def test_junction_table_shape(schema):
    """Test the columns and target of a many-to-many junction table."""
    junction = schema.table("junction_posts_categories")

    assert junction.role == TableRole.JUNCTION
    assert junction.foreign_key == "collection_id"
    assert junction.target_table == "collection_categories"
    assert junction.has_column("target_id")


def test_block_tables(schema):
    """Test the block table, its file table and the placement table."""
    placements = schema.table("collection_posts_blocks")
    image = schema.table("block_hero_image")

    assert placements.role == TableRole.BLOCKS
    assert placements.column_names[:4] == ["id", "collection_id", "block_type", "block_id"]
    assert image.owner_table == "block_hero"


def test_flat_global_has_no_core_content_columns(schema):
    """Test that a flat global has no slug or other content columns."""
    settings = schema.table("global_settings")

    assert settings.has_column("last_modified_by")
    assert settings.has_column("site_name")
    assert not settings.has_column("slug")


def test_child_tables_index(schema):
    """Test that child tables are indexed by owning table."""
    children = {spec.name for spec in schema.child_tables("collection_posts")}
    assert children == {
        "collection_posts_tags",
        "collection_posts_cover",
        "collection_posts_gallery",
        "collection_posts_sections",
        "junction_posts_categories",
        "collection_posts_blocks",
    }


def test_junctions_targeting(schema):
    """Test the lookup of junctions pointing at a table."""
    assert [spec.name for spec in schema.junctions_targeting("collection_categories")] == ["junction_posts_categories"]


def test_field_config_is_flattened(schema):
    """Test that nested fields appear in the field config under dotted paths."""
    posts = schema.entity("collection", "posts")
    by_path = {entry["path"]: entry for entry in posts.field_config}

    assert by_path["title"]["storage"] == "column"
    assert by_path["tags"]["storage"] == "array"
    assert by_path["tags.label"]["table"] == "collection_posts_tags"
    assert by_path["sections.rows.text"]["table"] == "collection_posts_sections_rows"
    assert by_path["categories"]["storage"] == "junction"
    assert by_path["writer"]["target"] == {"type": "many-to-one", "targetCollection": "authors"}
    assert by_path["gallery"]["multiple"] is True
    assert by_path["keywords"]["storage"] == "tags"


def test_types_described(schema):
    """Test the JSON Schema type description of a collection."""
    description = schema.types["collection:posts"]

    assert description["title"] == "CollectionPosts"
    assert {"id", "title", "tags", "cover", "categories"} <= set(description["properties"])


def test_generation_is_idempotent(site_definitions):
    """Test that generating twice gives identical JSON."""
    first = _generate(site_definitions).to_json()
    second = _generate(site_definitions).to_json()

    assert first == second


def test_table_name_collision_is_rejected(site_definitions):
    """Test that two definitions mapping to one table name are rejected."""
    site_definitions["collections"]["posts_tags"] = {"fields": {}}

    with pytest.raises(DefinitionError) as exc_info:
        _generate(site_definitions)

    codes = [issue.code for issue in exc_info.value.issues]
    assert codes == ["table_name_collision"]


def test_unresolved_relation_target_is_rejected(site_definitions):
    """Test that a relation to an undefined collection is rejected."""
    site_definitions["collections"]["posts"]["fields"]["series"] = {
        "type": "relation",
        "relation": {"type": "many-to-one", "targetCollection": "series"},
    }

    with pytest.raises(DefinitionError) as exc_info:
        _generate(site_definitions)

    issue = exc_info.value.issues[0]
    assert issue.code == "unresolved_relation_target"
    assert issue.path == "collection:posts.fields.series"


def test_unknown_allowed_block_is_rejected(site_definitions):
    """Test that allowedBlocks naming an undefined block is rejected."""
    site_definitions["collections"]["posts"]["options"]["blocks"] = ["hero", "gallery"]

    with pytest.raises(DefinitionError) as exc_info:
        _generate(site_definitions)

    assert exc_info.value.issues[0].code == "unresolved_block"


def test_reserved_field_name_is_rejected():
    """Test that a field cannot shadow a core column."""
    with pytest.raises(DefinitionError) as exc_info:
        _generate({"collections": {"pages": {"fields": {"created_at": {"type": "datetime"}}}}})

    assert exc_info.value.issues[0].code == "reserved_field_name"


def test_reserved_array_property_is_rejected():
    """Test that array item properties cannot use bookkeeping column names."""
    raw = {
        "collections": {
            "pages": {
                "fields": {
                    "links": {
                        "type": "array",
                        "items": {"type": "object", "properties": {"sort": {"type": "number"}}},
                    }
                }
            }
        }
    }
    with pytest.raises(DefinitionError) as exc_info:
        _generate(raw)

    assert exc_info.value.issues[0].path == "collection:pages.fields.links.items.properties.sort"


def test_failed_generation_returns_nothing(site_definitions):
    """Test that a failed generation produces no partial result."""
    site_definitions["collections"]["posts_tags"] = {"fields": {}}
    result = None

    with pytest.raises(DefinitionError):
        result = _generate(site_definitions)

    assert result is None
