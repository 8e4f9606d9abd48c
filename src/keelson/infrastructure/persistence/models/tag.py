"""SQLAlchemy models for tags and their assignments to content items."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from keelson.infrastructure.persistence.database import Base


class TagModel(Base):
    """A keyword tag, unique by slug within a scope."""

    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("slug", "scope", name="uq_tags_slug_scope"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    slug: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    scope: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        default="global",
        comment="Entity table the tag belongs to",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Tag(slug={self.slug}, scope={self.scope})>"


class TaggableModel(Base):
    """Assignment of a tag to a content item's tags field."""

    __tablename__ = "taggables"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tag_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tags.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    taggable_type: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Main table of the tagged entity",
    )
    taggable_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    field_name: Mapped[str] = mapped_column(String(64), nullable=False, default="tags")
    sort: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Taggable(tag_id={self.tag_id}, {self.taggable_type}:{self.taggable_id})>"
