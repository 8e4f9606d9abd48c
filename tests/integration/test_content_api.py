"""Integration tests for the content HTTP API."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from keelson.core.config import get_settings
from keelson.core.exceptions import DefinitionError, DefinitionIssue
from keelson.infrastructure.api.app import create_app
from keelson.infrastructure.persistence.database import get_db_session

CONTENT = f"{get_settings().api_prefix}/content"

pytestmark = pytest.mark.integration


@pytest_asyncio.fixture
async def client(db_session, registry):
    app = create_app()
    app.state.schema_registry = registry

    async def override_get_db_session():
        yield db_session

    app.dependency_overrides[get_db_session] = override_get_db_session

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def create(client, slug, payload, **kwargs):
    response = await client.post(f"{CONTENT}/collection/{slug}/items", json=payload, **kwargs)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_health(client):
    """Test the health endpoint."""
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_create_item(client):
    """Test that POST creates an item and records the acting user as author."""
    body = await create(client, "categories", {"title": "News"}, headers={"X-User-Id": "editor-1"})

    assert body["success"] is True
    assert body["item"]["id"] == body["item_id"]
    assert body["item"]["slug"] == "news"
    assert body["item"]["author"] == "editor-1"


@pytest.mark.asyncio
async def test_create_with_explicit_id(client):
    """Test that POST keeps an id given in the body."""
    body = await create(client, "categories", {"id": "cat-1", "title": "News"})

    assert body["item_id"] == "cat-1"


@pytest.mark.asyncio
async def test_validation_failure_is_422(client):
    """Test that validation failures map to 422 with field details."""
    response = await client.post(f"{CONTENT}/collection/posts/items", json={"rating": "lots"})

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "validation_error"
    assert {"title", "rating"} <= {detail["field"] for detail in body["details"]}


@pytest.mark.asyncio
async def test_reference_failure_is_400(client):
    """Test that a missing relation target maps to 400."""
    response = await client.post(f"{CONTENT}/collection/posts/items", json={"title": "x", "writer": "ghost"})

    assert response.status_code == 400
    assert response.json()["code"] == "reference_error"


@pytest.mark.asyncio
async def test_list_items(client):
    """Test that listings default to published items and honour the status filter."""
    await create(client, "posts", {"title": "Published", "status": "published", "keywords": "python"})
    await create(client, "posts", {"title": "Draft"})

    published = (await client.get(f"{CONTENT}/collection/posts")).json()
    everything = (await client.get(f"{CONTENT}/collection/posts", params={"status": "all", "orderBy": "title", "order": "asc"})).json()

    assert [item["title"] for item in published["items"]] == ["Published"]
    assert published["pagination"]["page_size"] == get_settings().default_page_size
    assert [item["title"] for item in everything["items"]] == ["Draft", "Published"]


@pytest.mark.asyncio
async def test_list_filters_by_relation(client):
    """Test the relatedField and relatedValue query parameters."""
    news = (await create(client, "categories", {"title": "News"}))["item_id"]
    await create(client, "posts", {"title": "In news", "status": "published", "categories": [news]})
    await create(client, "posts", {"title": "Elsewhere", "status": "published"})

    response = await client.get(
        f"{CONTENT}/collection/posts", params={"relatedField": "categories", "relatedValue": "news, ghost"}
    )

    assert [item["title"] for item in response.json()["items"]] == ["In news"]


@pytest.mark.asyncio
async def test_list_pagination(client):
    """Test page-based pagination over HTTP."""
    for title in ("A", "B", "C"):
        await create(client, "posts", {"title": title, "status": "published"})

    body = (await client.get(f"{CONTENT}/collection/posts", params={"limit": 2, "currentPage": 2, "orderBy": "title", "order": "asc"})).json()

    assert [item["title"] for item in body["items"]] == ["C"]
    assert body["pagination"]["page"] == 2
    assert body["has_more"] is False


@pytest.mark.asyncio
async def test_invalid_order_is_rejected(client):
    """Test that an invalid order value is rejected with 422."""
    response = await client.get(f"{CONTENT}/collection/posts", params={"order": "sideways"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_get_item_and_by_slug(client):
    """Test lookups by id and by slug with breadcrumbs and a base URL."""
    parent = await create(client, "posts", {"title": "Guides"})
    child = await create(client, "posts", {"title": "Install", "parent_id": parent["item_id"]})

    by_id = await client.get(f"{CONTENT}/collection/posts/items/{child['item_id']}")
    by_slug = await client.get(
        f"{CONTENT}/collection/posts/by-slug/install", params={"includeBreadcrumbs": "true", "baseUrl": "/docs"}
    )

    assert by_id.status_code == 200
    assert by_id.json()["url"] == "/blog/guides/install"
    assert by_slug.json()["url"] == "/docs/guides/install"
    assert [crumb["label"] for crumb in by_slug.json()["breadcrumbs"]] == ["Guides", "Install"]


@pytest.mark.asyncio
async def test_missing_item_is_404(client):
    """Test that an unknown item id returns 404."""
    response = await client.get(f"{CONTENT}/collection/posts/items/ghost")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_unknown_entity_is_404(client):
    """Test that an unregistered collection returns 404."""
    assert (await client.get(f"{CONTENT}/collection/pages")).status_code == 404
    assert (await client.post(f"{CONTENT}/collection/pages/items", json={"title": "x"})).status_code == 404


@pytest.mark.asyncio
async def test_unknown_kind_is_422(client):
    """Test that an unknown entity kind in the path returns 422."""
    response = await client.get(f"{CONTENT}/widget/posts")

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_item(client):
    """Test that PUT updates only the given fields and records the acting user."""
    created = await create(client, "posts", {"title": "Before", "tags": [{"label": "a"}]})

    response = await client.put(
        f"{CONTENT}/collection/posts/items/{created['item_id']}",
        json={"title": "After"},
        headers={"X-User-Id": "editor-2"},
    )

    assert response.status_code == 200
    item = response.json()["item"]
    assert item["title"] == "After"
    assert item["last_modified_by"] == "editor-2"
    assert [tag["label"] for tag in item["tags"]] == ["a"]


@pytest.mark.asyncio
async def test_put_creates_with_given_id(client):
    """Test that PUT to an unused id creates the item."""
    response = await client.put(f"{CONTENT}/collection/categories/items/cat-9", json={"title": "Nine"})

    assert response.status_code == 200
    assert response.json()["item_id"] == "cat-9"


@pytest.mark.asyncio
async def test_global_items(client):
    """Test creating and listing global items."""
    response = await client.post(f"{CONTENT}/global/settings/items", json={"site_name": "Keelson"})
    listing = await client.get(f"{CONTENT}/global/settings")

    assert response.status_code == 201
    assert [item["site_name"] for item in listing.json()["items"]] == ["Keelson"]


@pytest.mark.asyncio
async def test_delete_item(client):
    """Test that DELETE returns 204 and then 404 for the same item."""
    created = await create(client, "posts", {"title": "Doomed"})
    url = f"{CONTENT}/collection/posts/items/{created['item_id']}"

    deleted = await client.delete(url)
    again = await client.delete(url)

    assert deleted.status_code == 204
    assert (await client.get(url)).status_code == 404
    assert again.status_code == 404
    assert again.json()["code"] == "not_found"


@pytest.mark.asyncio
async def test_malformed_registry_is_reported(client, registry, monkeypatch):
    """Test that a malformed stored registry entry surfaces as definition_error."""
    async def broken_entity(session, kind, slug):
        raise DefinitionError(
            "Type registry is malformed",
            [DefinitionIssue("collection.posts.schema", "not valid JSON", "registry_json_invalid")],
        )

    monkeypatch.setattr(registry, "entity", broken_entity)

    response = await client.get(f"{CONTENT}/collection/posts")

    assert response.status_code == 500
    body = response.json()
    assert body["code"] == "definition_error"
    assert body["details"][0]["code"] == "registry_json_invalid"
