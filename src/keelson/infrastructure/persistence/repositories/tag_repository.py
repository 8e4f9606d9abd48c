"""Repository for tags and taggables."""

import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from keelson.infrastructure.persistence.models import TaggableModel, TagModel


class TagRepository:
    """Repository for tag database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy async session.
        """
        self.session = session

    async def get_by_slug(self, slug: str, scope: str) -> TagModel | None:
        """Get a tag by slug within a scope."""
        result = await self.session.execute(
            select(TagModel).where(TagModel.slug == slug, TagModel.scope == scope)
        )
        return result.scalar_one_or_none()

    async def create(self, name: str, slug: str, scope: str) -> TagModel:
        """Create a tag."""
        tag = TagModel(id=str(uuid.uuid4()), name=name, slug=slug, scope=scope)
        self.session.add(tag)
        await self.session.flush()
        return tag

    async def list_for_entity(
        self, taggable_type: str, taggable_id: str, field_name: str | None = None
    ) -> list[TagModel]:
        """Tags assigned to an item, in assignment order."""
        query = (
            select(TagModel)
            .join(TaggableModel, TaggableModel.tag_id == TagModel.id)
            .where(
                TaggableModel.taggable_type == taggable_type,
                TaggableModel.taggable_id == taggable_id,
            )
            .order_by(TaggableModel.sort, TaggableModel.id)
        )
        if field_name is not None:
            query = query.where(TaggableModel.field_name == field_name)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def add_taggable(
        self, tag_id: str, taggable_type: str, taggable_id: str, field_name: str, sort: int = 0
    ) -> None:
        """Assign a tag to an item."""
        self.session.add(
            TaggableModel(
                id=str(uuid.uuid4()),
                tag_id=tag_id,
                taggable_type=taggable_type,
                taggable_id=taggable_id,
                field_name=field_name,
                sort=sort,
            )
        )
        await self.session.flush()

    async def delete_for_entity(
        self, taggable_type: str, taggable_id: str, field_name: str | None = None
    ) -> int:
        """Remove tag assignments of an item, optionally limited to one field.

        Returns:
            Number of assignments removed.
        """
        stmt = delete(TaggableModel).where(
            TaggableModel.taggable_type == taggable_type,
            TaggableModel.taggable_id == taggable_id,
        )
        if field_name is not None:
            stmt = stmt.where(TaggableModel.field_name == field_name)
        result = await self.session.execute(stmt)
        return result.rowcount
