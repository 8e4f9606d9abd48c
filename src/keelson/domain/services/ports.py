"""Interfaces of the external components the content engine consumes.

Authorization and file storage live outside the engine. The engine only
calls the methods declared here and never inspects roles or storage
internals itself.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from keelson.domain.entities.definition import EntityKind
from keelson.domain.entities.file import FileRecord


@dataclass(frozen=True)
class QueryPredicate:
    """An SQL boolean expression AND-ed into a query's WHERE clause.

    Attributes:
        sql: SQL fragment, may reference columns of the queried table.
        params: Bound parameters used by the fragment.
    """

    sql: str
    params: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class Authorizer(Protocol):
    """Authorization component consumed as a gate."""

    async def build_query_predicate(
        self, kind: EntityKind, table: str, action: str
    ) -> QueryPredicate | None:
        """Return a predicate restricting rows visible for action, or None."""
        ...

    async def can(self, action: str, kind: EntityKind, resource: dict[str, Any]) -> bool:
        """Return whether action is allowed on the resource."""
        ...


class AllowAllAuthorizer:
    """Authorizer that permits everything and adds no predicate."""

    async def build_query_predicate(
        self, kind: EntityKind, table: str, action: str
    ) -> QueryPredicate | None:
        return None

    async def can(self, action: str, kind: EntityKind, resource: dict[str, Any]) -> bool:
        return True


@runtime_checkable
class FileStore(Protocol):
    """Storage component consumed by the content loader."""

    async def get_by_id(self, file_id: str) -> FileRecord | None:
        """Return the file record, or None when it does not exist."""
        ...
