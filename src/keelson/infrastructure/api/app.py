"""FastAPI application factory and configuration.

This module provides the application factory function for creating
and configuring the FastAPI application with its routes, middleware
and lifecycle handlers.
"""

import uuid
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from keelson.application.services.registry_sync import RegistrySynchronizer
from keelson.application.services.schema_registry import SchemaRegistry
from keelson.core.config import get_settings
from keelson.core.exceptions import ContentEngineError, DefinitionError, SchemaMismatchError
from keelson.core.logging import bind_correlation_id, clear_context, configure_logging, get_logger
from keelson.domain.services.definition_loader import DefinitionLoader
from keelson.infrastructure.persistence.database import (
    close_database,
    get_db_manager,
    init_database,
)
from keelson.infrastructure.persistence.schema_generator import SchemaGenerator

logger = get_logger(__name__)


async def sync_definitions(app: FastAPI) -> None:
    """Create the tables and registry rows of the configured site definitions.

    The generated schema is pinned in the application's schema registry.
    """
    settings = get_settings()
    db = get_db_manager()

    schema = SchemaGenerator.generate(DefinitionLoader.load_file(settings.definitions_path))
    await db.create_content_tables(schema.tables.values())
    async with db.session() as session:
        await RegistrySynchronizer.sync(session, schema)
    app.state.schema_registry.prime(schema, pinned=True)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events for the application.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control is yielded to the application during its lifetime.
    """
    settings = get_settings()

    # Startup
    logger.info(
        "Starting Keelson",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    configure_logging(settings)

    try:
        await init_database()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise

    if settings.auto_sync_on_startup:
        try:
            await sync_definitions(app)
            logger.info("Site definitions synchronized", path=settings.definitions_path)
        except Exception as e:
            logger.error("Failed to synchronize site definitions", path=settings.definitions_path, error=str(e))
            raise

    yield

    # Shutdown
    logger.info("Shutting down Keelson")
    await close_database()
    logger.info("Database connection closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Schema-driven content engine",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Shared runtime schema, compiled from the type registry on demand
    app.state.schema_registry = SchemaRegistry()

    register_health_check(app)
    register_routes(app)
    register_exception_handlers(app)
    register_middleware(app)

    return app


def register_health_check(app: FastAPI) -> None:
    """Register health check endpoints.

    Args:
        app: FastAPI application instance.
    """

    @app.get("/health", tags=["health"])
    async def health_check():
        """Basic health check endpoint.

        Returns 200 if the service is running. Does not check
        database connectivity.
        """
        return {
            "status": "healthy",
            "service": get_settings().app_name,
            "version": get_settings().app_version,
        }

    @app.get("/ready", tags=["health"])
    async def readiness_check():
        """Readiness check endpoint, including database connectivity."""
        if await get_db_manager().check_connection():
            return {
                "status": "ready",
                "service": get_settings().app_name,
                "version": get_settings().app_version,
                "database": "connected",
            }
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "service": get_settings().app_name,
                "database": "disconnected",
            },
        )


def register_routes(app: FastAPI) -> None:
    """Register API routes.

    Args:
        app: FastAPI application instance.
    """
    from keelson.infrastructure.api.routes import content_router

    settings = get_settings()

    app.include_router(content_router, prefix=f"{settings.api_prefix}/content", tags=["content"])

    @app.get(settings.api_prefix or "/", tags=["root"])
    async def api_root():
        """API root endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "api_version": "v1",
        }


def register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers.

    Args:
        app: FastAPI application instance.
    """

    @app.exception_handler(ContentEngineError)
    async def content_engine_exception_handler(request, exc: ContentEngineError):
        """Handle engine errors raised outside the write path, such as a malformed type registry."""
        if isinstance(exc, SchemaMismatchError):
            status_code, code = 404, "schema_mismatch"
        elif isinstance(exc, DefinitionError):
            status_code, code = 500, "definition_error"
        else:
            status_code, code = 400, "error"
        logger.warning("Content engine error", path=str(request.url.path), code=code, error=str(exc))

        content = {"success": False, "error": str(exc), "code": code}
        if isinstance(exc, DefinitionError) and exc.issues:
            content["details"] = [asdict(issue) for issue in exc.issues]
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Handle uncaught exceptions."""
        logger.error(
            "Unhandled exception",
            path=str(request.url),
            method=request.method,
            error=str(exc),
            exc_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if get_settings().debug else "An unexpected error occurred",
            },
        )


def register_middleware(app: FastAPI) -> None:
    """Register custom middleware.

    Args:
        app: FastAPI application instance.
    """

    @app.middleware("http")
    async def logging_middleware(request, call_next):
        """Log every request and bind a correlation ID to its log context."""
        correlation_id = request.headers.get("X-Correlation-ID", f"cid_{uuid.uuid4().hex[:12]}")
        bind_correlation_id(correlation_id)

        logger.info(
            "Request started",
            method=request.method,
            path=str(request.url.path),
        )

        try:
            response = await call_next(request)
            logger.info(
                "Request completed",
                method=request.method,
                path=str(request.url.path),
                status_code=response.status_code,
            )
            response.headers["X-Correlation-ID"] = correlation_id
            return response
        finally:
            clear_context()


# Create the application instance
app = create_app()
