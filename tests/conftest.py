"""Pytest configuration for all tests."""

import copy
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from keelson.application.services.content_service import ContentService
from keelson.application.services.schema_registry import SchemaRegistry
from keelson.domain.entities.definition import DefinitionSet
from keelson.domain.entities.schema import GeneratedSchema
from keelson.domain.services.definition_loader import DefinitionLoader
from keelson.infrastructure.persistence import models  # noqa: F401
from keelson.infrastructure.persistence.database import Base
from keelson.infrastructure.persistence.models import FileModel
from keelson.infrastructure.persistence.schema_generator import SchemaGenerator
from keelson.infrastructure.persistence.table_builder import TableBuilder

SITE_DEFINITIONS: dict[str, Any] = {
    "collections": {
        "categories": {
            "name": {"singular": "Category", "plural": "Categories"},
            "fields": {"description": {"type": "textarea"}, "pinned": {"type": "boolean"}},
        },
        "authors": {
            "name": {"singular": "Author", "plural": "Authors"},
            "fields": {"bio": {"type": "text"}},
        },
        "posts": {
            "name": {"singular": "Post", "plural": "Posts"},
            "options": {"nestable": True, "basePath": "/blog", "blocks": True},
            "fields": {
                "excerpt": {"type": "textarea"},
                "rating": {"type": "number"},
                "featured": {"type": "boolean", "default": False},
                "tags": {
                    "type": "array",
                    "items": {"type": "object", "properties": {"label": {"type": "string", "required": True}}},
                },
                "cover": {"type": "file"},
                "gallery": {"type": "file", "multiple": True},
                "sections": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "heading": {"type": "string"},
                            "rows": {
                                "type": "array",
                                "items": {"type": "object", "properties": {"text": {"type": "string"}}},
                            },
                        },
                    },
                },
                "categories": {
                    "type": "relation",
                    "relation": {"type": "many-to-many", "targetCollection": "categories"},
                },
                "writer": {
                    "type": "relation",
                    "relation": {"type": "many-to-one", "targetCollection": "authors"},
                },
                "keywords": {"type": "tags"},
            },
        },
    },
    "globals": {
        "settings": {
            "name": "Site Settings",
            "dataType": "flat",
            "fields": {
                "site_name": {"type": "string"},
                "maintenance": {"type": "boolean"},
            },
        },
    },
    "blocks": {
        "hero": {
            "name": "Hero",
            "fields": {
                "headline": {"type": "string", "required": True},
                "image": {"type": "file"},
            },
        },
    },
}

FILE_IDS = ("file-123", "file-456", "file-789")


@pytest.fixture
def site_definitions() -> dict[str, Any]:
    """A fresh copy of the sample site definition document."""
    return copy.deepcopy(SITE_DEFINITIONS)


@pytest.fixture
def definitions(site_definitions) -> DefinitionSet:
    return DefinitionLoader.load_dict(site_definitions)


@pytest.fixture
def schema(definitions) -> GeneratedSchema:
    return SchemaGenerator.generate(definitions)


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the fixed tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def content_engine(engine, schema) -> AsyncEngine:
    """Engine with the generated content tables materialized."""
    await TableBuilder.create_tables(engine, schema.tables.values())
    return engine


@pytest.fixture
def session_factory(content_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(content_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session on the content database."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def registry(schema) -> SchemaRegistry:
    """Schema registry serving the sample schema without a registry round trip."""
    registry = SchemaRegistry()
    registry.prime(schema, pinned=True)
    return registry


@pytest.fixture
def service(db_session, registry) -> ContentService:
    return ContentService(db_session, registry)


@pytest_asyncio.fixture
async def files(db_session) -> tuple[str, ...]:
    """Register the sample file records."""
    for index, file_id in enumerate(FILE_IDS):
        db_session.add(
            FileModel(
                id=file_id,
                name=f"image-{index}.png",
                url=f"/media/image-{index}.png",
                path=f"media/image-{index}.png",
                mime_type="image/png",
                size=1024 * (index + 1),
                alt=f"Image {index}",
            )
        )
    await db_session.commit()
    return FILE_IDS
