"""SQLAlchemy models for the type registry tables.

One row per collection, global or block definition, storing the resolved
field schema that the runtime consults instead of the live definitions.
"""

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from keelson.infrastructure.persistence.database import Base


class _RegistryColumns:
    """Columns shared by every type registry table."""

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        comment="Registry row ID (UUID)",
    )
    slug: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
        comment="Entity slug, unique within its kind",
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    schema: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="JSON of the resolved (core merged) field definitions",
    )
    options: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="{}",
        comment="JSON of the entity options",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class CollectionTypeModel(_RegistryColumns, Base):
    """Registry row of a collection definition."""

    __tablename__ = "collection_types"

    name_singular: Mapped[str] = mapped_column(String(128), nullable=False)
    name_plural: Mapped[str] = mapped_column(String(128), nullable=False)
    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<CollectionType(slug={self.slug})>"


class GlobalTypeModel(_RegistryColumns, Base):
    """Registry row of a global definition."""

    __tablename__ = "global_types"

    name_singular: Mapped[str] = mapped_column(String(128), nullable=False)
    name_plural: Mapped[str] = mapped_column(String(128), nullable=False)
    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)
    data_type: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="repeatable",
        comment="flat, repeatable or relational",
    )

    def __repr__(self) -> str:
        return f"<GlobalType(slug={self.slug}, data_type={self.data_type})>"


class BlockTypeModel(_RegistryColumns, Base):
    """Registry row of a block definition."""

    __tablename__ = "block_types"

    name: Mapped[str] = mapped_column(String(128), nullable=False)

    def __repr__(self) -> str:
        return f"<BlockType(slug={self.slug})>"
