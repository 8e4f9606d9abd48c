"""Runtime schema registry.

Compiles the type registry rows into a GeneratedSchema and keeps it in an
explicit TTL cache. The loader, writer and query façade resolve every
entity and table through the schema returned here.
"""

import json
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from keelson.core.cache import TTLCache
from keelson.core.config import get_settings
from keelson.core.exceptions import DefinitionError, DefinitionIssue
from keelson.core.logging import get_logger
from keelson.domain.entities.definition import (
    EntityDefinition,
    EntityKind,
    EntityOptions,
    GlobalDataType,
)
from keelson.domain.entities.field import FieldDefinition
from keelson.domain.entities.schema import EntityConfig, GeneratedSchema
from keelson.domain.entities.table import TableSpec
from keelson.infrastructure.persistence.repositories import RegistryRepository
from keelson.infrastructure.persistence.schema_generator import SchemaGenerator

logger = get_logger(__name__)

SCHEMA_CACHE_KEY = "schema"


def definition_from_registry_row(kind: EntityKind, row: Any) -> EntityDefinition:
    """Rebuild a resolved entity definition from a type registry row.

    Raises:
        DefinitionError: If the stored schema or options are not valid JSON.
    """
    path = f"{kind.value}:{row.slug}"
    try:
        raw_fields = json.loads(row.schema or "{}")
        raw_options = json.loads(row.options or "{}")
    except json.JSONDecodeError as e:
        raise DefinitionError(
            "Invalid type registry row",
            [DefinitionIssue(path, f"Stored JSON is malformed: {e}", "registry_json_invalid")],
        ) from e

    data_type = None
    if kind == EntityKind.GLOBAL:
        data_type = GlobalDataType(getattr(row, "data_type", None) or GlobalDataType.REPEATABLE.value)

    if kind == EntityKind.BLOCK:
        name_singular = name_plural = row.name
    else:
        name_singular, name_plural = row.name_singular, row.name_plural

    return EntityDefinition(
        kind=kind,
        slug=row.slug,
        name_singular=name_singular,
        name_plural=name_plural,
        fields={
            name: FieldDefinition.from_dict(name, raw, f"{path}.fields.{name}")
            for name, raw in raw_fields.items()
        },
        options=EntityOptions.from_dict(raw_options, data_type=data_type),
        description=row.description,
        icon=getattr(row, "icon", None),
        resolved=True,
    )


class SchemaRegistry:
    """Cached runtime view of the type registry.

    The compiled schema is cached under a single key; `clear()` forces the
    next lookup to recompile from the registry tables.
    """

    def __init__(self, cache: TTLCache | None = None) -> None:
        """Initialize the registry.

        Args:
            cache: Cache holding the compiled schema. Defaults to a cache
                with the configured registry TTL.
        """
        self._cache = cache or TTLCache(ttl_seconds=get_settings().registry_cache_ttl_seconds)

    def prime(self, schema: GeneratedSchema, pinned: bool = False) -> None:
        """Put a compiled schema in the cache.

        Args:
            schema: The schema to serve.
            pinned: Keep the schema until `clear()` instead of expiring it.
        """
        self._cache.set(SCHEMA_CACHE_KEY, schema, ttl_seconds=float("inf") if pinned else None)

    def clear(self) -> None:
        """Drop the cached schema."""
        self._cache.clear()

    async def schema(self, session: AsyncSession) -> GeneratedSchema:
        """Get the runtime schema, compiling it from the registry when not cached.

        Args:
            session: Database session used to read the registry.

        Returns:
            The compiled schema.
        """
        cached = self._cache.get(SCHEMA_CACHE_KEY)
        if cached is not None:
            return cached
        schema = await self.compile_from_registry(session)
        self._cache.set(SCHEMA_CACHE_KEY, schema)
        return schema

    async def entity(self, session: AsyncSession, kind: EntityKind | str, slug: str) -> EntityConfig:
        """Resolve an entity, raising SchemaMismatchError when it is not registered."""
        return (await self.schema(session)).entity(kind, slug)

    async def table(self, session: AsyncSession, name: str) -> TableSpec:
        """Resolve a table, raising SchemaMismatchError when it is not registered."""
        return (await self.schema(session)).table(name)

    @staticmethod
    async def compile_from_registry(session: AsyncSession) -> GeneratedSchema:
        """Compile the schema described by the type registry rows.

        Args:
            session: Database session used to read the registry.

        Returns:
            The compiled schema.

        Raises:
            DefinitionError: If the stored definitions no longer compile.
        """
        repo = RegistryRepository(session)
        definitions: list[EntityDefinition] = []
        for kind in EntityKind:
            for row in await repo.list_all(kind):
                definitions.append(definition_from_registry_row(kind, row))
        schema = SchemaGenerator.compile(definitions)
        logger.debug("Schema compiled from registry", entities=len(definitions))
        return schema
