"""Command-line interface for Keelson.

This module provides the CLI commands for generating schemas from site
definitions, materializing them in the database and serving content.
"""

import asyncio
import sys
from pathlib import Path

import click

from keelson.core.config import get_settings
from keelson.core.exceptions import DefinitionError
from keelson.core.logging import configure_logging, get_logger
from keelson.domain.services.definition_loader import DefinitionLoader
from keelson.infrastructure.persistence.schema_generator import SchemaGenerator
from keelson.infrastructure.persistence.table_builder import TableBuilder


def _load_schema(definitions: str):
    try:
        return SchemaGenerator.generate(DefinitionLoader.load_file(definitions))
    except DefinitionError as e:
        click.echo(f"ERROR: {e}", err=True)
        raise SystemExit(1) from e


@click.group()
@click.version_option(version="0.1.0", prog_name="Keelson")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    default=None,
    help="Set log level (overrides KEELSON_LOG_LEVEL)",
)
def cli(log_level: str | None) -> None:
    """Keelson - schema-driven content engine.

    Turns declarative site definitions into relational tables and serves
    their content.
    """
    settings = get_settings()
    if log_level is not None:
        settings = settings.model_copy(update={"log_level": log_level})
    configure_logging(settings, stream=sys.stderr)


@cli.command()
@click.argument("definitions", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write to this file instead of stdout",
)
@click.option("--ddl", is_flag=True, default=False, help="Emit CREATE TABLE statements instead of JSON")
@click.option(
    "--dialect",
    type=click.Choice(["sqlite", "postgresql"]),
    default="sqlite",
    show_default=True,
    help="SQL dialect of the emitted DDL",
)
def generate(definitions: str, output: str | None, ddl: bool, dialect: str) -> None:
    """Generate the schema of a site definition file.

    Prints the canonical schema JSON, or the DDL with --ddl. Nothing is
    written when the definitions are invalid.
    """
    schema = _load_schema(definitions)
    if ddl:
        rendered = TableBuilder.build_schema_ddl(schema.tables.values(), dialect)
    else:
        rendered = schema.to_json()

    if output is None:
        click.echo(rendered, nl=False)
        return
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(rendered, encoding="utf-8")
    click.echo(f"Wrote {len(schema.tables)} tables to {path}", err=True)


@cli.command()
@click.argument("definitions", type=click.Path(exists=True, dir_okay=False))
def sync(definitions: str) -> None:
    """Create or extend the tables of a site definition file and register its types."""
    from keelson.application.services.registry_sync import RegistrySynchronizer
    from keelson.infrastructure.persistence.database import get_db_manager, init_database

    logger = get_logger(__name__)
    schema = _load_schema(definitions)

    async def run() -> None:
        db = get_db_manager()
        try:
            await init_database(db)
            tables = await db.create_content_tables(schema.tables.values())
            async with db.session() as session:
                report = await RegistrySynchronizer.sync(session, schema)
        finally:
            await db.disconnect()

        click.echo(f"Tables created: {len(tables['created'])}, altered: {len(tables['altered'])}")
        click.echo(
            f"Types created: {len(report.created)}, updated: {len(report.updated)}, "
            f"removed: {len(report.removed)}, unchanged: {len(report.unchanged)}"
        )
        logger.info("Site definitions synchronized", definitions=definitions, changed=report.changed)

    asyncio.run(run())


@cli.command()
@click.option("--host", type=str, default=None, help="Host to bind to (overrides config)")
@click.option("--port", type=int, default=None, help="Port to bind to (overrides config)")
@click.option("--workers", type=int, default=None, help="Number of worker processes (overrides config)")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development")
def serve(host: str | None, port: int | None, workers: int | None, reload: bool) -> None:
    """Start the Keelson content server."""
    import uvicorn

    settings = get_settings()
    bind_host = host or settings.host
    bind_port = port or settings.port
    bind_workers = workers or settings.workers

    logger = get_logger(__name__)
    logger.info(
        "Starting Keelson server",
        host=bind_host,
        port=bind_port,
        workers=bind_workers,
        reload=reload,
        environment=settings.environment,
    )

    uvicorn.run(
        "keelson.infrastructure.api.app:app",
        host=bind_host,
        port=bind_port,
        workers=1 if reload else bind_workers,
        reload=reload,
        log_level=settings.log_level.lower(),
        access_log=True,
    )


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
