"""FastAPI dependencies for the content routes.

Provides the database session, the shared schema registry, the acting user
and a content service bound to the request's session.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from keelson.application.services.content_service import ContentService
from keelson.application.services.schema_registry import SchemaRegistry
from keelson.core.config import get_settings
from keelson.domain.services.value_coercion import sanitize_id
from keelson.infrastructure.persistence.database import get_db_session


def get_schema_registry(request: Request) -> SchemaRegistry:
    """Get the schema registry shared by every request of the application."""
    return request.app.state.schema_registry


def get_acting_user(request: Request) -> str | None:
    """Read the acting user id from the configured request header.

    Authentication happens upstream; the header value is trusted as is.
    """
    return sanitize_id(request.headers.get(get_settings().acting_user_header))


async def get_content_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    registry: Annotated[SchemaRegistry, Depends(get_schema_registry)],
) -> ContentService:
    """Build a content service for the request's database session."""
    return ContentService(session, registry)


# Type aliases for dependency injection
ActingUser = Annotated[str | None, Depends(get_acting_user)]
Content = Annotated[ContentService, Depends(get_content_service)]
