"""Integration tests for saving and deleting nested content."""

from typing import Any

import pytest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from keelson.application.services.content_writer import ContentWriter, file_references
from keelson.domain.entities.definition import EntityKind
from keelson.domain.entities.table import TableRole

pytestmark = pytest.mark.integration


class DenyAuthorizer:
    """Authorizer that rejects every write."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, EntityKind, dict[str, Any]]] = []

    async def build_query_predicate(self, kind, table, action):
        return None

    async def can(self, action, kind, resource):
        self.calls.append((action, kind, resource))
        return False


async def count_rows(session, table: str, where: str = "1 = 1", **params) -> int:
    result = await session.execute(text(f'SELECT COUNT(*) FROM "{table}" WHERE {where}'), params)
    return int(result.scalar_one())


async def fetch_row(session, table: str, row_id: str) -> dict[str, Any] | None:
    result = await session.execute(text(f'SELECT * FROM "{table}" WHERE "id" = :id'), {"id": row_id})
    row = result.fetchone()
    return dict(row._mapping) if row is not None else None


@pytest.fixture
def posts(schema):
    return schema.entity(EntityKind.COLLECTION, "posts")


@pytest.fixture
def writer(db_session, schema):
    return ContentWriter(db_session, schema)


async def create(service, slug: str, payload: dict[str, Any], **kwargs) -> str:
    result = await service.save_item(slug, None, payload, **kwargs)
    assert result.success, result.error
    return result.item_id


def test_file_references_normalizes_shapes():
    """File references accept ids, objects and lists and drop duplicates."""
    assert file_references(None) == []
    assert file_references("f1") == [("f1", None)]
    assert file_references([{"id": "f1", "alt_override": "Alt"}, "f2", "f1", ""]) == [("f1", "Alt"), ("f2", None)]


@pytest.mark.asyncio
async def test_save_and_load_every_field_shape(service, files):
    """Every field variant survives a save followed by a load."""
    news = await create(service, "categories", {"title": "News"})
    guides = await create(service, "categories", {"title": "Guides"})
    ann = await create(service, "authors", {"title": "Ann", "bio": "Writes things"})

    post_id = await create(
        service,
        "posts",
        {
            "title": "Hello World",
            "excerpt": "Short",
            "rating": "4.5",
            "tags": [{"label": "first"}, {"label": "second"}],
            "cover": {"id": "file-123", "alt_override": "Cover art"},
            "gallery": ["file-789", "file-123"],
            "sections": [{"heading": "Intro", "rows": [{"text": "a"}, {"text": "b"}]}],
            "categories": [guides, {"id": news}],
            "writer": ann,
            "keywords": "python, SQL",
        },
        acting_user="user-1",
    )

    item = await service.get_item("posts", item_id=post_id)

    assert item["slug"] == "hello-world"
    assert item["status"] == "draft"
    assert item["featured"] is False
    assert item["rating"] == 4.5
    assert item["author"] == "user-1"
    assert item["last_modified_by"] == "user-1"
    assert [tag["label"] for tag in item["tags"]] == ["first", "second"]
    assert [tag["sort"] for tag in item["tags"]] == [0, 1]
    assert item["cover"]["id"] == "file-123"
    assert item["cover"]["alt"] == "Cover art"
    assert [f["id"] for f in item["gallery"]] == ["file-789", "file-123"]
    assert item["gallery"][0]["url"] == "/media/image-2.png"
    assert item["sections"][0]["heading"] == "Intro"
    assert [row["text"] for row in item["sections"][0]["rows"]] == ["a", "b"]
    assert [c["title"] for c in item["categories"]] == ["Guides", "News"]
    assert item["writer"]["title"] == "Ann"
    assert [k["name"] for k in item["keywords"]] == ["python", "SQL"]
    assert item["url"] == "/blog/hello-world"


@pytest.mark.asyncio
async def test_array_items_are_reconciled_by_id(service, db_session):
    """Kept items are updated in place and missing items are deleted."""
    post_id = await create(
        service, "posts", {"title": "Diff", "tags": [{"label": "A"}, {"label": "B"}, {"label": "C"}]}
    )
    before = (await service.get_item("posts", item_id=post_id))["tags"]
    a, b, c = (tag["id"] for tag in before)

    result = await service.save_item(
        "posts", post_id, {"tags": [{"id": a, "label": "A"}, {"id": c, "label": "C2"}]}
    )
    after = (await service.get_item("posts", item_id=post_id))["tags"]

    assert result.success
    assert [tag["id"] for tag in after] == [a, c]
    assert [tag["label"] for tag in after] == ["A", "C2"]
    assert [tag["sort"] for tag in after] == [0, 1]
    assert await count_rows(db_session, "collection_posts_tags", '"id" = :id', id=b) == 0


@pytest.mark.asyncio
async def test_removed_array_item_takes_nested_rows_with_it(service, db_session):
    """Deleting an array item also deletes its nested array rows."""
    post_id = await create(
        service,
        "posts",
        {
            "title": "Nested",
            "sections": [
                {"heading": "One", "rows": [{"text": "1a"}, {"text": "1b"}]},
                {"heading": "Two", "rows": [{"text": "2a"}]},
            ],
        },
    )
    sections = (await service.get_item("posts", item_id=post_id))["sections"]
    first = sections[0]

    await service.save_item(
        "posts",
        post_id,
        {"sections": [{"id": first["id"], "heading": "One", "rows": [{"id": first["rows"][1]["id"], "text": "1b"}]}]},
    )

    reloaded = (await service.get_item("posts", item_id=post_id))["sections"]
    assert [s["heading"] for s in reloaded] == ["One"]
    assert [r["text"] for r in reloaded[0]["rows"]] == ["1b"]
    assert reloaded[0]["rows"][0]["id"] == first["rows"][1]["id"]
    assert await count_rows(db_session, "collection_posts_sections_rows") == 1


@pytest.mark.asyncio
async def test_fields_absent_from_payload_are_untouched(service):
    """Test that a partial update leaves unmentioned fields as stored."""
    post_id = await create(service, "posts", {"title": "Keep", "tags": [{"label": "stay"}], "excerpt": "x"})

    await service.save_item("posts", post_id, {"excerpt": "y"})
    item = await service.get_item("posts", item_id=post_id)

    assert item["excerpt"] == "y"
    assert [tag["label"] for tag in item["tags"]] == ["stay"]


@pytest.mark.asyncio
async def test_emptying_file_fields(service, files, db_session):
    """Null or empty file values clear the file-relation rows."""
    post_id = await create(service, "posts", {"title": "Files", "cover": "file-123", "gallery": ["file-456"]})

    await service.save_item("posts", post_id, {"cover": None, "gallery": []})
    item = await service.get_item("posts", item_id=post_id)

    assert item["cover"] is None
    assert item["gallery"] == []
    assert await count_rows(db_session, "collection_posts_cover") == 0


@pytest.mark.asyncio
async def test_single_file_field_accepts_one_element_list(service, files):
    """Test that a single file field takes a list holding one reference."""
    post_id = await create(service, "posts", {"title": "One", "cover": [{"id": "file-456"}]})

    item = await service.get_item("posts", item_id=post_id)

    assert item["cover"]["id"] == "file-456"
    assert item["cover"]["alt"] == "Image 1"


@pytest.mark.asyncio
async def test_single_file_field_rejects_several_references(service):
    """Test that a single file field rejects a list of two references."""
    result = await service.save_item("posts", None, {"title": "Two", "cover": ["file-456", "file-123"]})

    assert result.code == "validation_error"
    assert result.details[0]["field"] == "cover"


@pytest.mark.asyncio
async def test_slug_is_made_unique(service):
    """Generated slugs get a numeric suffix when already taken."""
    first = await create(service, "posts", {"title": "Same"})
    second = await create(service, "posts", {"title": "Same"})

    assert (await service.get_item("posts", item_id=first))["slug"] == "same"
    assert (await service.get_item("posts", item_id=second))["slug"] == "same-2"


@pytest.mark.asyncio
async def test_duplicate_explicit_slug_is_an_integrity_error(service):
    """Test that an explicit slug already in use fails with integrity_error."""
    await create(service, "categories", {"title": "News", "slug": "news"})

    result = await service.save_item("categories", None, {"title": "Other", "slug": "news"})

    assert result.success is False
    assert result.code == "integrity_error"


@pytest.mark.asyncio
async def test_explicit_id_is_used_on_create(service):
    """Test that a new item keeps the id given in the payload."""
    result = await service.save_item("categories", "cat-1", {"title": "News"})

    assert result.item_id == "cat-1"
    assert (await service.get_item("categories", item_id="cat-1"))["title"] == "News"


@pytest.mark.asyncio
async def test_validation_failure_writes_nothing(service, db_session):
    """Validation errors are all reported and no row is written."""
    result = await service.save_item("posts", None, {"rating": "lots", "tags": [{}]})

    assert result.success is False
    assert result.code == "validation_error"
    failed = {detail["field"] for detail in result.details}
    assert {"title", "rating", "tags[0].label"} <= failed
    assert await count_rows(db_session, "collection_posts") == 0


@pytest.mark.asyncio
async def test_permission_denied(db_session, schema, posts):
    """Test that a denied save reports permission_denied."""
    authorizer = DenyAuthorizer()
    writer = ContentWriter(db_session, schema, authorizer=authorizer)

    result = await writer.save(posts, None, {"title": "Nope"})

    assert result.code == "permission_denied"
    assert authorizer.calls[0][0] == "create"
    assert authorizer.calls[0][1] == EntityKind.COLLECTION
    assert await count_rows(db_session, "collection_posts") == 0


@pytest.mark.asyncio
async def test_item_cannot_be_its_own_parent(service):
    """Test that an item cannot name itself as parent."""
    result = await service.save_item("posts", "p1", {"title": "Loop", "parent_id": "p1"})

    assert result.code == "reference_error"


@pytest.mark.asyncio
async def test_parent_must_exist(service):
    """Test that parent_id must reference an existing item."""
    result = await service.save_item("posts", None, {"title": "Orphan", "parent_id": "ghost"})

    assert result.code == "reference_error"


@pytest.mark.asyncio
async def test_parent_cycle_is_rejected(service):
    """Test that a parent chain leading back to the item is rejected."""
    root = await create(service, "posts", {"title": "Root"})
    child = await create(service, "posts", {"title": "Child", "parent_id": root})

    result = await service.save_item("posts", root, {"parent_id": child})

    assert result.code == "reference_error"
    assert "cycle" in result.error


@pytest.mark.asyncio
async def test_empty_parent_id_is_stored_as_null(service, db_session):
    """Test that an empty parent_id is stored as NULL."""
    post_id = await create(service, "posts", {"title": "Top", "parent_id": "undefined"})

    assert (await fetch_row(db_session, "collection_posts", post_id))["parent_id"] is None


@pytest.mark.asyncio
async def test_missing_relation_target(service, db_session):
    """Test that a relation to a missing item fails with reference_error."""
    single = await service.save_item("posts", None, {"title": "A", "writer": "ghost-author"})
    many = await service.save_item("posts", None, {"title": "B", "categories": ["ghost-category"]})

    assert single.code == "reference_error"
    assert many.code == "reference_error"
    assert await count_rows(db_session, "collection_posts") == 0


@pytest.mark.asyncio
async def test_failed_child_write_rolls_back_main_row(db_session, schema, posts, writer, monkeypatch):
    """A failing child write rolls back the main row of the same save."""
    created = await writer.save(posts, None, {"title": "Original"})
    original_insert = writer.repo.insert_row

    async def failing_insert(spec, values):
        if spec.role == TableRole.ARRAY:
            raise SQLAlchemyError("disk full")
        await original_insert(spec, values)

    monkeypatch.setattr(writer.repo, "insert_row", failing_insert)
    result = await writer.save(posts, created.item_id, {"title": "Changed", "tags": [{"label": "x"}]})

    assert result.code == "database_error"
    assert (await fetch_row(db_session, "collection_posts", created.item_id))["title"] == "Original"
    assert await count_rows(db_session, "collection_posts_tags") == 0


@pytest.mark.asyncio
async def test_unknown_entity_is_a_schema_mismatch(service):
    """Test that saving into an unregistered collection fails with schema_mismatch."""
    result = await service.save_item("pages", None, {"title": "x"})

    assert result.code == "schema_mismatch"


@pytest.mark.asyncio
async def test_flat_global(service):
    """Test saving and loading a flat global with a coerced boolean."""
    settings_id = await create(
        service, "settings", {"site_name": "Keelson", "maintenance": "on"}, kind=EntityKind.GLOBAL
    )

    item = await service.get_item("settings", item_id=settings_id, kind="global")

    assert item["site_name"] == "Keelson"
    assert item["maintenance"] is True
    assert "url" not in item


@pytest.mark.asyncio
async def test_blocks_are_saved_in_order(service, files, db_session):
    """Blocks keep their order, and a resave drops the blocks it leaves out."""
    post_id = await create(
        service,
        "posts",
        {
            "title": "Landing",
            "blocks": [
                {"blockType": "hero", "headline": "First", "image": "file-123"},
                {"blockType": "hero", "headline": "Second"},
            ],
        },
    )

    blocks = (await service.get_item("posts", item_id=post_id))["blocks"]

    assert [b["blockType"] for b in blocks] == ["hero", "hero"]
    assert [b["headline"] for b in blocks] == ["First", "Second"]
    assert blocks[0]["image"]["id"] == "file-123"
    assert blocks[1]["image"] is None

    await service.save_item(
        "posts", post_id, {"blocks": [{"id": blocks[1]["id"], "blockType": "hero", "headline": "Only"}]}
    )
    reloaded = (await service.get_item("posts", item_id=post_id))["blocks"]

    assert [(b["id"], b["headline"]) for b in reloaded] == [(blocks[1]["id"], "Only")]
    assert await count_rows(db_session, "block_hero") == 1
    assert await count_rows(db_session, "block_hero_image") == 0


@pytest.mark.asyncio
async def test_block_validation_errors_are_located(service):
    """Test that block errors are reported under the block's path."""
    result = await service.save_item("posts", None, {"title": "x", "blocks": [{"blockType": "hero"}]})

    assert result.code == "validation_error"
    assert [d["field"] for d in result.details] == ["blocks[0].headline"]


@pytest.mark.asyncio
async def test_unknown_block_type(service):
    """Test that an unregistered block type is a validation error."""
    result = await service.save_item("posts", None, {"title": "x", "blocks": [{"blockType": "quote"}]})

    assert result.code == "validation_error"
    assert result.details[0]["code"] == "unknown_block"


@pytest.mark.asyncio
async def test_duplicate_array_item_ids_are_rejected(service):
    """Two items sharing an id fail validation and leave the stored items alone."""
    post_id = await create(service, "posts", {"title": "Dupes", "tags": [{"label": "a"}]})
    tag_id = (await service.get_item("posts", item_id=post_id))["tags"][0]["id"]

    result = await service.save_item(
        "posts", post_id, {"tags": [{"id": tag_id, "label": "x"}, {"id": tag_id, "label": "y"}]}
    )
    tags = (await service.get_item("posts", item_id=post_id))["tags"]

    assert result.code == "validation_error"
    assert [(d["field"], d["code"]) for d in result.details] == [("tags[1].id", "duplicate_id")]
    assert [(tag["label"], tag["sort"]) for tag in tags] == [("a", 0)]


@pytest.mark.asyncio
async def test_duplicate_block_ids_are_rejected(service, db_session):
    """Test that two blocks sharing an id fail validation."""
    result = await service.save_item(
        "posts",
        None,
        {
            "title": "Twice",
            "blocks": [
                {"id": "b1", "blockType": "hero", "headline": "One"},
                {"id": "b1", "blockType": "hero", "headline": "Two"},
            ],
        },
    )

    assert result.code == "validation_error"
    assert [(d["field"], d["code"]) for d in result.details] == [("blocks[1].id", "duplicate_id")]
    assert await count_rows(db_session, "block_hero") == 0


@pytest.mark.asyncio
async def test_foreign_block_id_is_validated_as_new_block(service, db_session):
    """A block id placed on another item does not let required fields be skipped."""
    first = await create(service, "posts", {"title": "First", "blocks": [{"blockType": "hero", "headline": "Mine"}]})
    second = await create(service, "posts", {"title": "Second"})
    block_id = (await service.get_item("posts", item_id=first))["blocks"][0]["id"]

    result = await service.save_item("posts", second, {"blocks": [{"id": block_id, "blockType": "hero"}]})

    assert result.code == "validation_error"
    assert [d["field"] for d in result.details] == ["blocks[0].headline"]
    assert await count_rows(db_session, "block_hero") == 1

    partial = await service.save_item("posts", first, {"blocks": [{"id": block_id, "blockType": "hero"}]})
    blocks = (await service.get_item("posts", item_id=first))["blocks"]

    assert partial.success, partial.error
    assert [(b["id"], b["headline"]) for b in blocks] == [(block_id, "Mine")]


@pytest.mark.asyncio
async def test_tags_are_replaced(service):
    """Test that saving tags replaces the previous assignment."""
    post_id = await create(service, "posts", {"title": "Tagged", "keywords": ["Python", "SQL"]})

    await service.save_item("posts", post_id, {"keywords": [{"name": "sql"}]})
    item = await service.get_item("posts", item_id=post_id)

    assert [k["slug"] for k in item["keywords"]] == ["sql"]


@pytest.mark.asyncio
async def test_delete_cleans_up_references(service, db_session, files):
    """Deleting items clears junction rows, relation columns and child rows."""
    news = await create(service, "categories", {"title": "News"})
    ann = await create(service, "authors", {"title": "Ann"})
    post_id = await create(
        service,
        "posts",
        {"title": "Post", "categories": [news], "writer": ann, "cover": "file-123", "tags": [{"label": "x"}]},
    )

    assert (await service.delete_item("categories", news)).success
    assert await count_rows(db_session, "junction_posts_categories") == 0

    assert (await service.delete_item("authors", ann)).success
    assert (await fetch_row(db_session, "collection_posts", post_id))["writer"] is None

    assert (await service.delete_item("posts", post_id)).success
    assert await count_rows(db_session, "collection_posts") == 0
    assert await count_rows(db_session, "collection_posts_tags") == 0
    assert await count_rows(db_session, "collection_posts_cover") == 0


@pytest.mark.asyncio
async def test_delete_moves_children_to_grandparent(service, db_session):
    """Test that children of a deleted item move up to its parent."""
    root = await create(service, "posts", {"title": "Root"})
    middle = await create(service, "posts", {"title": "Middle", "parent_id": root})
    leaf = await create(service, "posts", {"title": "Leaf", "parent_id": middle})

    result = await service.delete_item("posts", middle)

    assert result.success
    assert (await fetch_row(db_session, "collection_posts", leaf))["parent_id"] == root


@pytest.mark.asyncio
async def test_delete_removes_blocks_and_tags(service, db_session):
    """Test that deleting an item removes its blocks and tag links."""
    post_id = await create(
        service,
        "posts",
        {"title": "Gone", "keywords": "a, b", "blocks": [{"blockType": "hero", "headline": "Bye"}]},
    )

    await service.delete_item("posts", post_id)

    assert await count_rows(db_session, "block_hero") == 0
    assert await count_rows(db_session, "collection_posts_blocks") == 0
    assert await count_rows(db_session, "taggables") == 0


@pytest.mark.asyncio
async def test_delete_missing_or_invalid_id(service):
    """Test that deletes report not_found and invalid_id."""
    assert (await service.delete_item("posts", "ghost")).code == "not_found"
    assert (await service.delete_item("posts", "undefined")).code == "invalid_id"


@pytest.mark.asyncio
async def test_delete_permission_denied(db_session, schema, posts, writer):
    """Test that a denied delete keeps the row."""
    created = await writer.save(posts, None, {"title": "Protected"})
    denying = ContentWriter(db_session, schema, authorizer=DenyAuthorizer())

    result = await denying.delete(posts, created.item_id)

    assert result.code == "permission_denied"
    assert await count_rows(db_session, "collection_posts") == 1


@pytest.mark.asyncio
async def test_save_with_id_then_drop_first_tag(service, files):
    """Dropping the first array item renumbers the remaining item."""
    result = await service.save_item(
        "posts", "p1", {"title": "Hello", "tags": [{"label": "a"}, {"label": "b"}], "cover": "file-123"}
    )
    item = await service.get_item("posts", item_id="p1")

    assert result.item_id == "p1"
    assert [(tag["label"], tag["sort"]) for tag in item["tags"]] == [("a", 0), ("b", 1)]
    assert item["cover"]["id"] == "file-123"
    assert item["cover"]["url"] == "/media/image-0.png"

    b_id = item["tags"][1]["id"]
    await service.save_item("posts", "p1", {"tags": [{"id": b_id, "label": "b"}]})
    reloaded = await service.get_item("posts", item_id="p1")

    assert [(tag["id"], tag["label"], tag["sort"]) for tag in reloaded["tags"]] == [(b_id, "b", 0)]
    assert reloaded["title"] == "Hello"
