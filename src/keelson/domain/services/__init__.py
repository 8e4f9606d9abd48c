"""Domain services for Keelson.

Services contain the naming, definition and validation logic that does not
fit within a single entity. They have no dependencies on infrastructure.
"""

from keelson.domain.services.core_fields import (
    CORE_FIELDS,
    SEO_FIELDS,
    core_fields_for,
    merge_fields,
)
from keelson.domain.services.definition_loader import DefinitionLoader
from keelson.domain.services.payload_validator import PayloadValidator
from keelson.domain.services.ports import (
    AllowAllAuthorizer,
    Authorizer,
    FileStore,
    QueryPredicate,
)
from keelson.domain.services.slug_generator import SlugGenerator

__all__ = [
    "AllowAllAuthorizer",
    "Authorizer",
    "CORE_FIELDS",
    "DefinitionLoader",
    "FileStore",
    "PayloadValidator",
    "QueryPredicate",
    "SEO_FIELDS",
    "SlugGenerator",
    "core_fields_for",
    "merge_fields",
]
