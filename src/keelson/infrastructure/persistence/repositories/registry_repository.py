"""Repository for the type registry tables."""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from keelson.domain.entities.definition import EntityKind
from keelson.infrastructure.persistence.models import (
    BlockTypeModel,
    CollectionTypeModel,
    GlobalTypeModel,
)

RegistryModel = CollectionTypeModel | GlobalTypeModel | BlockTypeModel

REGISTRY_MODELS: dict[EntityKind, type] = {
    EntityKind.COLLECTION: CollectionTypeModel,
    EntityKind.GLOBAL: GlobalTypeModel,
    EntityKind.BLOCK: BlockTypeModel,
}


class RegistryRepository:
    """Repository for type registry database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy async session.
        """
        self.session = session

    async def list_all(self, kind: EntityKind) -> list[RegistryModel]:
        """Get every registry row of a kind, ordered by slug."""
        model = REGISTRY_MODELS[kind]
        result = await self.session.execute(select(model).order_by(model.slug))
        return list(result.scalars().all())

    async def get_by_slug(self, kind: EntityKind, slug: str) -> RegistryModel | None:
        """Get a registry row by slug.

        Args:
            kind: The entity kind.
            slug: The entity slug.

        Returns:
            The registry row if found, None otherwise.
        """
        model = REGISTRY_MODELS[kind]
        result = await self.session.execute(select(model).where(model.slug == slug))
        return result.scalar_one_or_none()

    async def create(self, row: RegistryModel) -> RegistryModel:
        """Add a registry row."""
        self.session.add(row)
        await self.session.flush()
        return row

    async def delete_slugs(self, kind: EntityKind, slugs: list[str]) -> int:
        """Delete registry rows by slug.

        Returns:
            Number of rows deleted.
        """
        if not slugs:
            return 0
        model = REGISTRY_MODELS[kind]
        result = await self.session.execute(delete(model).where(model.slug.in_(slugs)))
        return result.rowcount
