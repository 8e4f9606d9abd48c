"""Repository for file records.

Backs the FileStore interface the content loader resolves file ids with.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from keelson.domain.entities.file import FileRecord
from keelson.infrastructure.persistence.models import FileModel


class FileRepository:
    """Repository for file database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy async session.
        """
        self.session = session

    @staticmethod
    def _to_record(model: FileModel) -> FileRecord:
        return FileRecord(
            id=model.id,
            name=model.name,
            url=model.url,
            path=model.path,
            mime_type=model.mime_type,
            size=model.size,
            alt=model.alt,
            created_at=model.created_at,
        )

    async def get_by_id(self, file_id: str) -> FileRecord | None:
        """Get a file record by ID.

        Args:
            file_id: The file ID.

        Returns:
            The file record if found, None otherwise.
        """
        result = await self.session.execute(select(FileModel).where(FileModel.id == file_id))
        model = result.scalar_one_or_none()
        return self._to_record(model) if model is not None else None

    async def create(self, record: FileRecord) -> FileRecord:
        """Register a file record.

        Args:
            record: The file record to store.

        Returns:
            The stored record.
        """
        model = FileModel(
            id=record.id,
            name=record.name,
            url=record.url,
            path=record.path,
            mime_type=record.mime_type,
            size=record.size,
            alt=record.alt,
        )
        self.session.add(model)
        await self.session.flush()
        return record

    async def delete(self, file_id: str) -> bool:
        """Delete a file record.

        Returns:
            True if a record was deleted.
        """
        model = await self.session.get(FileModel, file_id)
        if model is None:
            return False
        await self.session.delete(model)
        await self.session.flush()
        return True
