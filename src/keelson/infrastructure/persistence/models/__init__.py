"""SQLAlchemy models for the fixed Keelson tables.

All models inherit from the Base class defined in database.py. Generated
content tables are not mapped.
"""

from keelson.infrastructure.persistence.models.file import FileModel
from keelson.infrastructure.persistence.models.tag import TaggableModel, TagModel
from keelson.infrastructure.persistence.models.type_registry import (
    BlockTypeModel,
    CollectionTypeModel,
    GlobalTypeModel,
)

__all__ = [
    "BlockTypeModel",
    "CollectionTypeModel",
    "FileModel",
    "GlobalTypeModel",
    "TagModel",
    "TaggableModel",
]
