"""Repositories for the fixed tables and the generated content tables."""

from keelson.infrastructure.persistence.repositories.content_repository import ContentRepository
from keelson.infrastructure.persistence.repositories.file_repository import FileRepository
from keelson.infrastructure.persistence.repositories.registry_repository import (
    REGISTRY_MODELS,
    RegistryRepository,
)
from keelson.infrastructure.persistence.repositories.tag_repository import TagRepository

__all__ = [
    "ContentRepository",
    "FileRepository",
    "REGISTRY_MODELS",
    "RegistryRepository",
    "TagRepository",
]
