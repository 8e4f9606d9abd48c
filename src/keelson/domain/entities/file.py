"""File record entity."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class FileRecord:
    """A stored file as seen by the content engine.

    Attributes:
        id: Unique identifier.
        name: Original file name.
        url: Public URL.
        path: Storage path.
        mime_type: MIME type.
        size: Size in bytes.
        alt: Alternative text.
        created_at: Upload timestamp.
    """

    id: str
    name: str
    url: str | None = None
    path: str | None = None
    mime_type: str | None = None
    size: int | None = None
    alt: str | None = None
    created_at: datetime | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
