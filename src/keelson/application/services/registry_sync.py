"""Type registry synchronization.

Diffs a generated schema against the type registry tables and writes the
difference in a single transaction.
"""

import json
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from keelson.core.logging import get_logger
from keelson.domain.entities.definition import EntityKind
from keelson.domain.entities.schema import EntityConfig, GeneratedSchema
from keelson.infrastructure.persistence.repositories import REGISTRY_MODELS, RegistryRepository

logger = get_logger(__name__)


@dataclass
class SyncReport:
    """Entity keys touched by a registry sync."""

    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.removed)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "created": self.created,
            "updated": self.updated,
            "removed": self.removed,
            "unchanged": self.unchanged,
        }


def registry_values(config: EntityConfig) -> dict[str, Any]:
    """Column values of the registry row describing an entity."""
    values: dict[str, Any] = {
        "description": config.description,
        "schema": json.dumps(config.schema_dict(), ensure_ascii=False),
        "options": json.dumps(config.options.to_dict(), sort_keys=True, ensure_ascii=False),
    }
    if config.kind == EntityKind.BLOCK:
        values["name"] = config.name_singular
    else:
        values["name_singular"] = config.name_singular
        values["name_plural"] = config.name_plural
        values["icon"] = config.icon
    if config.kind == EntityKind.GLOBAL:
        data_type = config.options.data_type
        values["data_type"] = data_type.value if data_type is not None else "repeatable"
    return values


class RegistrySynchronizer:
    """Writes the resolved entity schemas to the type registry."""

    @classmethod
    async def sync(cls, session: AsyncSession, schema: GeneratedSchema) -> SyncReport:
        """Insert new, update changed and remove stale registry rows.

        Either every change is committed or none is.

        Args:
            session: Database session.
            schema: The generated schema to register.

        Returns:
            Report of the entity keys created, updated, removed and unchanged.
        """
        repo = RegistryRepository(session)
        report = SyncReport()
        try:
            for kind in EntityKind:
                existing = {row.slug: row for row in await repo.list_all(kind)}
                wanted = {
                    config.slug: config for config in schema.entities.values() if config.kind == kind
                }

                for slug in sorted(wanted):
                    config = wanted[slug]
                    values = registry_values(config)
                    row = existing.get(slug)
                    if row is None:
                        model = REGISTRY_MODELS[kind]
                        await repo.create(model(id=str(uuid.uuid4()), slug=slug, **values))
                        report.created.append(config.key)
                    elif any(getattr(row, column) != value for column, value in values.items()):
                        for column, value in values.items():
                            setattr(row, column, value)
                        report.updated.append(config.key)
                    else:
                        report.unchanged.append(config.key)

                stale = sorted(set(existing) - set(wanted))
                await repo.delete_slugs(kind, stale)
                report.removed.extend(f"{kind.value}:{slug}" for slug in stale)

            await session.commit()
        except Exception:
            await session.rollback()
            logger.error("Registry sync failed, rolled back")
            raise

        logger.info(
            "Type registry synchronized",
            created=len(report.created),
            updated=len(report.updated),
            removed=len(report.removed),
            unchanged=len(report.unchanged),
        )
        return report
