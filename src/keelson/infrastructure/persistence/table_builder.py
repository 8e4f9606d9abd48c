"""Dynamic table builder for creating physical tables from table specs.

Generates DDL and creates or extends tables described by the schema
generator.
"""

from typing import Any, Iterable

from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from keelson.core.logging import get_logger
from keelson.domain.entities.table import ColumnSpec, ColumnType, TableSpec

logger = get_logger(__name__)


# SQL type mapping for each logical column type, per dialect
COLUMN_TYPE_TO_SQL = {
    "sqlite": {
        ColumnType.TEXT: "TEXT",
        ColumnType.NUMERIC: "NUMERIC",
        ColumnType.INTEGER: "INTEGER",
        ColumnType.BOOLEAN: "INTEGER",  # 0/1 for SQLite compatibility
        ColumnType.TIMESTAMP: "TIMESTAMP",
    },
    "postgresql": {
        ColumnType.TEXT: "TEXT",
        ColumnType.NUMERIC: "NUMERIC",
        ColumnType.INTEGER: "INTEGER",
        ColumnType.BOOLEAN: "BOOLEAN",
        ColumnType.TIMESTAMP: "TIMESTAMP",
    },
}


def quote(identifier: str) -> str:
    """Quote an SQL identifier."""
    return '"' + identifier.replace('"', '""') + '"'


class TableBuilder:
    """Builds and creates physical database tables from table specs."""

    @classmethod
    def sql_type(cls, column_type: ColumnType, dialect: str = "sqlite") -> str:
        mapping = COLUMN_TYPE_TO_SQL.get(dialect, COLUMN_TYPE_TO_SQL["sqlite"])
        return mapping[column_type]

    @classmethod
    def render_default(cls, column: ColumnSpec, dialect: str = "sqlite") -> str | None:
        """Render a column default as an SQL literal."""
        default = column.default
        if default is None:
            return None
        if default == "CURRENT_TIMESTAMP" and column.type == ColumnType.TIMESTAMP:
            return "CURRENT_TIMESTAMP"
        if isinstance(default, bool):
            if column.type == ColumnType.BOOLEAN and dialect == "postgresql":
                return "TRUE" if default else "FALSE"
            return "1" if default else "0"
        if isinstance(default, (int, float)) and column.type in (
            ColumnType.NUMERIC,
            ColumnType.INTEGER,
        ):
            return str(default)
        if isinstance(default, (dict, list)):
            return None
        escaped = str(default).replace("'", "''")
        return f"'{escaped}'"

    @classmethod
    def build_column_def(cls, column: ColumnSpec, dialect: str = "sqlite") -> str:
        """Build column definition for a single column.

        Args:
            column: The column spec.
            dialect: SQL dialect name.

        Returns:
            The column definition.
        """
        parts = [quote(column.name), cls.sql_type(column.type, dialect)]

        if column.primary_key:
            parts.append("PRIMARY KEY")
        elif not column.nullable:
            parts.append("NOT NULL")

        default_sql = cls.render_default(column, dialect)
        if default_sql is not None:
            parts.append(f"DEFAULT {default_sql}")

        if column.unique and not column.primary_key:
            parts.append("UNIQUE")

        return " ".join(parts)

    @classmethod
    def build_create_table_ddl(cls, spec: TableSpec, dialect: str = "sqlite") -> str:
        """Build complete CREATE TABLE DDL statement.

        Args:
            spec: The table spec.
            dialect: SQL dialect name.

        Returns:
            The DDL statement as a string.
        """
        column_defs = [cls.build_column_def(column, dialect) for column in spec.columns]
        columns_sql = ",\n  ".join(column_defs)
        return f"CREATE TABLE IF NOT EXISTS {quote(spec.name)} (\n  {columns_sql}\n);"

    @classmethod
    def build_index_ddl(cls, spec: TableSpec) -> list[str]:
        """Build CREATE INDEX statements for the table.

        Indexes the foreign-key and sort columns listed on the spec.
        """
        return [
            f"CREATE INDEX IF NOT EXISTS {quote(f'idx_{spec.name}_{column}')} "
            f"ON {quote(spec.name)}({quote(column)});"
            for column in spec.indexes
        ]

    @classmethod
    def build_add_column_ddl(cls, spec: TableSpec, columns: Iterable[ColumnSpec], dialect: str = "sqlite") -> list[str]:
        """Build ALTER TABLE ADD COLUMN statements for new columns.

        SQLite cannot add NOT NULL columns without a default, so NOT NULL is
        only kept when a default is rendered.
        """
        statements = []
        for column in columns:
            parts = [quote(column.name), cls.sql_type(column.type, dialect)]
            default_sql = cls.render_default(column, dialect)
            if default_sql is not None and default_sql != "CURRENT_TIMESTAMP":
                parts.append(f"DEFAULT {default_sql}")
                if not column.nullable:
                    parts.append("NOT NULL")
            statements.append(f"ALTER TABLE {quote(spec.name)} ADD COLUMN {' '.join(parts)};")
        return statements

    @classmethod
    def build_schema_ddl(cls, specs: Iterable[TableSpec], dialect: str = "sqlite") -> str:
        """Render the DDL of every table, in generation order."""
        statements: list[str] = []
        for spec in specs:
            statements.append(cls.build_create_table_ddl(spec, dialect))
            statements.extend(cls.build_index_ddl(spec))
        return "\n\n".join(statements) + "\n"

    @classmethod
    async def existing_columns(cls, conn: AsyncConnection) -> dict[str, set[str]]:
        """Map every existing table to its column names."""

        def _inspect(sync_conn: Any) -> dict[str, set[str]]:
            inspector = inspect(sync_conn)
            return {
                table: {column["name"] for column in inspector.get_columns(table)}
                for table in inspector.get_table_names()
            }

        return await conn.run_sync(_inspect)

    @classmethod
    async def create_tables(cls, engine: AsyncEngine, specs: Iterable[TableSpec]) -> dict[str, list[str]]:
        """Create missing tables and add missing columns.

        Args:
            engine: SQLAlchemy async engine.
            specs: Table specs to materialize.

        Returns:
            Mapping with the 'created' table names and 'altered' table names.
        """
        dialect = engine.dialect.name
        created: list[str] = []
        altered: list[str] = []

        async with engine.begin() as conn:
            existing = await cls.existing_columns(conn)
            for spec in specs:
                if spec.name not in existing:
                    ddl = cls.build_create_table_ddl(spec, dialect)
                    await conn.execute(text(ddl))
                    logger.debug("Table created", table_name=spec.name, ddl=ddl)
                    created.append(spec.name)
                else:
                    missing = [c for c in spec.columns if c.name not in existing[spec.name]]
                    for ddl in cls.build_add_column_ddl(spec, missing, dialect):
                        await conn.execute(text(ddl))
                        logger.debug("Column added", ddl=ddl)
                    if missing:
                        altered.append(spec.name)

                for index_ddl in cls.build_index_ddl(spec):
                    await conn.execute(text(index_ddl))

        logger.info("Generated tables materialized", created=len(created), altered=len(altered))
        return {"created": created, "altered": altered}

    @classmethod
    async def table_exists(cls, engine: AsyncEngine, table_name: str) -> bool:
        """Check if a table already exists."""
        async with engine.connect() as conn:
            existing = await conn.run_sync(lambda sync_conn: inspect(sync_conn).has_table(table_name))
            return bool(existing)

    @classmethod
    async def drop_table(cls, engine: AsyncEngine, table_name: str) -> None:
        """Drop a generated table."""
        async with engine.begin() as conn:
            ddl = f"DROP TABLE IF EXISTS {quote(table_name)};"
            await conn.execute(text(ddl))
            logger.info("Table dropped", table_name=table_name)
