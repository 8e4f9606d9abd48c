"""SQLAlchemy model for the files table.

File records are opaque to the content engine; it only resolves them by id.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from keelson.infrastructure.persistence.database import Base


class FileModel(Base):
    """SQLAlchemy model for the files table.

    Attributes:
        id: Primary key.
        name: Original file name.
        url: Public URL.
        path: Storage path.
        mime_type: MIME type.
        size: Size in bytes.
        alt: Default alternative text.
        created_at: Upload timestamp.
    """

    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    path: Mapped[str | None] = mapped_column(Text, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    alt: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<File(id={self.id}, name={self.name})>"
