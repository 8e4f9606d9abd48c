"""API Routes for Keelson."""

from keelson.infrastructure.api.routes.content_router import router as content_router

__all__ = ["content_router"]
