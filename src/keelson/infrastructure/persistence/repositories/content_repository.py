"""Repository for generated content tables.

Provides row operations on dynamically generated tables using raw SQL,
since those tables are not mapped to ORM models. Every table is resolved
through the generated schema's table map before SQL is built.
"""

from typing import Any, Iterable

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from keelson.core.exceptions import SchemaMismatchError
from keelson.core.logging import get_logger
from keelson.domain.entities.table import TableSpec
from keelson.infrastructure.persistence.table_builder import quote

logger = get_logger(__name__)


def _row_to_dict(row: Any) -> dict[str, Any]:
    return dict(row._mapping)


class ContentRepository:
    """Row-level database operations on generated tables."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy async session.
        """
        self.session = session

    @staticmethod
    def _check_columns(spec: TableSpec, columns: Iterable[str]) -> None:
        for column in columns:
            if not spec.has_column(column):
                raise SchemaMismatchError(f"Column '{column}' is not described for table '{spec.name}'")

    async def get_row(self, spec: TableSpec, row_id: str) -> dict[str, Any] | None:
        """Get a row by id.

        Args:
            spec: The table spec.
            row_id: The row id.

        Returns:
            The row as a dict if found, None otherwise.
        """
        result = await self.session.execute(
            text(f"SELECT * FROM {quote(spec.name)} WHERE \"id\" = :row_id"),
            {"row_id": row_id},
        )
        row = result.fetchone()
        return _row_to_dict(row) if row is not None else None

    async def get_row_by(self, spec: TableSpec, column: str, value: Any) -> dict[str, Any] | None:
        """Get the first row whose column equals value."""
        self._check_columns(spec, [column])
        result = await self.session.execute(
            text(f"SELECT * FROM {quote(spec.name)} WHERE {quote(column)} = :value LIMIT 1"),
            {"value": value},
        )
        row = result.fetchone()
        return _row_to_dict(row) if row is not None else None

    async def exists(self, spec: TableSpec, row_id: str) -> bool:
        """Check if a row with the given id exists."""
        result = await self.session.execute(
            text(f"SELECT 1 FROM {quote(spec.name)} WHERE \"id\" = :row_id LIMIT 1"),
            {"row_id": row_id},
        )
        return result.scalar_one_or_none() is not None

    async def list_children(self, spec: TableSpec, owner_id: str) -> list[dict[str, Any]]:
        """Rows of a child table owned by owner_id, in ascending sort order.

        Args:
            spec: An array, file or blocks table spec.
            owner_id: Id of the owning row.

        Returns:
            The rows, ordered by sort.
        """
        if spec.foreign_key is None:
            raise SchemaMismatchError(f"Table '{spec.name}' has no owner foreign key")
        order = ' ORDER BY "sort" ASC' if spec.has_column("sort") else ""
        result = await self.session.execute(
            text(f"SELECT * FROM {quote(spec.name)} WHERE {quote(spec.foreign_key)} = :owner_id{order}"),
            {"owner_id": owner_id},
        )
        return [_row_to_dict(row) for row in result.fetchall()]

    async def child_ids(self, spec: TableSpec, owner_ids: list[str]) -> list[str]:
        """Ids of the rows of a child table owned by any of owner_ids."""
        if not owner_ids or spec.foreign_key is None:
            return []
        stmt = text(
            f"SELECT \"id\" FROM {quote(spec.name)} WHERE {quote(spec.foreign_key)} IN :owner_ids"
        ).bindparams(bindparam("owner_ids", expanding=True))
        result = await self.session.execute(stmt, {"owner_ids": list(owner_ids)})
        return [row[0] for row in result.fetchall()]

    async def list_junction_targets(
        self, junction: TableSpec, target: TableSpec, owner_id: str
    ) -> list[dict[str, Any]]:
        """Target rows linked to owner_id through a junction table.

        Rows come back in the order the links were created.
        """
        if junction.foreign_key is None:
            raise SchemaMismatchError(f"Junction '{junction.name}' has no owner foreign key")
        sql = (
            f"SELECT t.* FROM {quote(junction.name)} j "
            f"INNER JOIN {quote(target.name)} t ON j.\"target_id\" = t.\"id\" "
            f"WHERE j.{quote(junction.foreign_key)} = :owner_id "
            f"ORDER BY j.\"created_at\" ASC, j.\"id\" ASC"
        )
        result = await self.session.execute(text(sql), {"owner_id": owner_id})
        return [_row_to_dict(row) for row in result.fetchall()]

    async def insert_row(self, spec: TableSpec, values: dict[str, Any]) -> None:
        """Insert a row.

        Args:
            spec: The table spec.
            values: Column values, including the id.
        """
        self._check_columns(spec, values)
        columns = ", ".join(quote(k) for k in values)
        placeholders = ", ".join(f":{k}" for k in values)
        await self.session.execute(
            text(f"INSERT INTO {quote(spec.name)} ({columns}) VALUES ({placeholders})"),
            values,
        )

    async def update_row(
        self,
        spec: TableSpec,
        row_id: str,
        values: dict[str, Any],
        owner_id: str | None = None,
    ) -> int:
        """Update a row.

        Args:
            spec: The table spec.
            row_id: The row id.
            values: Column values to set.
            owner_id: When given, only update the row if it belongs to this owner.

        Returns:
            Number of rows updated.
        """
        if not values:
            return await self._count_match(spec, row_id, owner_id)
        self._check_columns(spec, values)
        set_clause = ", ".join(f"{quote(k)} = :{k}" for k in values)
        where = '"id" = :__row_id'
        params = {**values, "__row_id": row_id}
        if owner_id is not None and spec.foreign_key is not None:
            where += f" AND {quote(spec.foreign_key)} = :__owner_id"
            params["__owner_id"] = owner_id
        result = await self.session.execute(
            text(f"UPDATE {quote(spec.name)} SET {set_clause} WHERE {where}"),
            params,
        )
        return result.rowcount

    async def _count_match(self, spec: TableSpec, row_id: str, owner_id: str | None) -> int:
        where = '"id" = :row_id'
        params: dict[str, Any] = {"row_id": row_id}
        if owner_id is not None and spec.foreign_key is not None:
            where += f" AND {quote(spec.foreign_key)} = :owner_id"
            params["owner_id"] = owner_id
        result = await self.session.execute(
            text(f"SELECT COUNT(*) FROM {quote(spec.name)} WHERE {where}"), params
        )
        return int(result.scalar_one())

    async def delete_by_ids(self, spec: TableSpec, ids: list[str]) -> int:
        """Delete rows by id."""
        if not ids:
            return 0
        stmt = text(f"DELETE FROM {quote(spec.name)} WHERE \"id\" IN :ids").bindparams(
            bindparam("ids", expanding=True)
        )
        result = await self.session.execute(stmt, {"ids": list(ids)})
        return result.rowcount

    async def delete_where(self, spec: TableSpec, column: str, values: list[str]) -> int:
        """Delete rows whose column value is in values."""
        if not values:
            return 0
        self._check_columns(spec, [column])
        stmt = text(f"DELETE FROM {quote(spec.name)} WHERE {quote(column)} IN :values").bindparams(
            bindparam("values", expanding=True)
        )
        result = await self.session.execute(stmt, {"values": list(values)})
        return result.rowcount

    async def stale_child_ids(self, spec: TableSpec, owner_id: str, keep_ids: list[str]) -> list[str]:
        """Ids of owner_id's rows in a child table that are not in keep_ids."""
        if spec.foreign_key is None:
            raise SchemaMismatchError(f"Table '{spec.name}' has no owner foreign key")
        sql = f"SELECT \"id\" FROM {quote(spec.name)} WHERE {quote(spec.foreign_key)} = :owner_id"
        params: dict[str, Any] = {"owner_id": owner_id}
        if keep_ids:
            stmt = text(sql + ' AND "id" NOT IN :keep_ids').bindparams(
                bindparam("keep_ids", expanding=True)
            )
            params["keep_ids"] = list(keep_ids)
        else:
            stmt = text(sql)
        result = await self.session.execute(stmt, params)
        return [row[0] for row in result.fetchall()]

    async def reparent(self, spec: TableSpec, old_parent_id: str, new_parent_id: str | None) -> int:
        """Move every row whose parent_id is old_parent_id under new_parent_id."""
        self._check_columns(spec, ["parent_id"])
        result = await self.session.execute(
            text(f"UPDATE {quote(spec.name)} SET \"parent_id\" = :new_parent WHERE \"parent_id\" = :old_parent"),
            {"new_parent": new_parent_id, "old_parent": old_parent_id},
        )
        return result.rowcount

    async def clear_references(self, spec: TableSpec, column: str, target_id: str) -> int:
        """Set column to NULL on every row referencing target_id."""
        self._check_columns(spec, [column])
        result = await self.session.execute(
            text(f"UPDATE {quote(spec.name)} SET {quote(column)} = NULL WHERE {quote(column)} = :target_id"),
            {"target_id": target_id},
        )
        return result.rowcount

    async def count(self, spec: TableSpec, where_sql: str, params: dict[str, Any]) -> int:
        """Count rows matching a WHERE clause built by the caller."""
        result = await self.session.execute(
            text(f"SELECT COUNT(*) FROM {quote(spec.name)} WHERE {where_sql}"), params
        )
        return int(result.scalar_one())

    async def find(
        self,
        spec: TableSpec,
        where_sql: str,
        params: dict[str, Any],
        order_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Select rows matching a WHERE clause built by the caller.

        Args:
            spec: The table spec.
            where_sql: SQL boolean expression with named parameters.
            params: Bound parameters for where_sql.
            order_by: Column to sort by; must exist on the table.
            descending: Whether to sort in descending order.
            limit: Maximum number of rows, or None for all.
            offset: Number of rows to skip.

        Returns:
            The matching rows.
        """
        self._check_columns(spec, [order_by])
        direction = "DESC" if descending else "ASC"
        sql = (
            f"SELECT * FROM {quote(spec.name)} WHERE {where_sql} "
            f"ORDER BY {quote(order_by)} {direction}, \"id\" {direction}"
        )
        params = dict(params)
        if limit is not None:
            sql += " LIMIT :__limit OFFSET :__offset"
            params["__limit"] = limit
            params["__offset"] = offset
        elif offset:
            dialect = self.session.get_bind().dialect.name
            sql += " LIMIT -1 OFFSET :__offset" if dialect == "sqlite" else " OFFSET :__offset"
            params["__offset"] = offset
        result = await self.session.execute(text(sql), params)
        return [_row_to_dict(row) for row in result.fetchall()]
