"""Tag service.

Persists entity-level keyword tags. Tags are written in their own commit
after the content transaction, so the content writer treats a failure here
as recoverable.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from keelson.core.logging import get_logger
from keelson.domain.services.slug_generator import SlugGenerator
from keelson.infrastructure.persistence.repositories import TagRepository

logger = get_logger(__name__)


def normalize_tag_names(value: Any) -> list[str]:
    """Normalize a tags payload to distinct names, keeping their order.

    Accepts a list of names, a list of objects with `name`, or a
    comma-separated string. Names with the same slug count once.
    """
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    names: list[str] = []
    seen: set[str] = set()
    for entry in value:
        if isinstance(entry, dict):
            entry = entry.get("name")
        if not isinstance(entry, str) or not entry.strip():
            continue
        name = entry.strip()
        slug = SlugGenerator.generate(name, fallback="tag")
        if slug in seen:
            continue
        seen.add(slug)
        names.append(name)
    return names


class TagService:
    """Assigns, lists and removes tags of content items."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the service.

        Args:
            session: Database session the tags are committed with.
        """
        self.session = session
        self.repo = TagRepository(session)

    async def tag_entity(
        self, taggable_type: str, taggable_id: str, names: Any, field_name: str = "tags"
    ) -> list[dict[str, Any]]:
        """Replace the tags of an item field.

        Tags are found or created by slug within the item's table scope.

        Args:
            taggable_type: Main table of the tagged item.
            taggable_id: Id of the tagged item.
            names: Tags payload (see normalize_tag_names).
            field_name: The tags field.

        Returns:
            The assigned tags, in order.
        """
        tag_names = normalize_tag_names(names)
        try:
            await self.repo.delete_for_entity(taggable_type, taggable_id, field_name)
            assigned = []
            for position, name in enumerate(tag_names):
                slug = SlugGenerator.generate(name, fallback="tag")
                tag = await self.repo.get_by_slug(slug, scope=taggable_type)
                if tag is None:
                    tag = await self.repo.create(name=name, slug=slug, scope=taggable_type)
                await self.repo.add_taggable(tag.id, taggable_type, taggable_id, field_name, sort=position)
                assigned.append({"id": tag.id, "name": tag.name, "slug": tag.slug})
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.debug(
            "Tags assigned",
            taggable_type=taggable_type,
            taggable_id=taggable_id,
            field=field_name,
            count=len(assigned),
        )
        return assigned

    async def get_tags(
        self, taggable_type: str, taggable_id: str, field_name: str | None = None
    ) -> list[dict[str, Any]]:
        """Tags of an item, in assignment order."""
        tags = await self.repo.list_for_entity(taggable_type, taggable_id, field_name)
        return [{"id": tag.id, "name": tag.name, "slug": tag.slug} for tag in tags]

    async def untag_entity(self, taggable_type: str, taggable_id: str) -> int:
        """Remove every tag assignment of an item.

        Returns:
            Number of assignments removed.
        """
        try:
            removed = await self.repo.delete_for_entity(taggable_type, taggable_id)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return removed
