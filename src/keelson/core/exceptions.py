"""Exceptions raised by the content engine."""

from dataclasses import dataclass


@dataclass(frozen=True)
class DefinitionIssue:
    """A single problem found in a site definition.

    Attributes:
        path: Dotted location of the problem (e.g. 'collection.posts.fields.tags').
        message: Human-readable error message.
        code: Machine-readable error code.
    """

    path: str
    message: str
    code: str


@dataclass(frozen=True)
class FieldError:
    """A single payload validation error."""

    field: str
    message: str
    code: str


class ContentEngineError(Exception):
    """Base class for all content engine errors."""
    pass


class DefinitionError(ContentEngineError):
    """Raised when entity or field definitions are malformed or collide."""

    def __init__(self, message: str, issues: list[DefinitionIssue] | None = None):
        self.issues = list(issues or [])
        if self.issues:
            details = "; ".join(f"{issue.path}: {issue.message}" for issue in self.issues)
            message = f"{message}: {details}"
        super().__init__(message)


class SchemaMismatchError(ContentEngineError):
    """Raised when a table, column or entity is not described by the schema."""
    pass


class ContentValidationError(ContentEngineError):
    """Raised when a payload fails type or required constraints."""

    def __init__(self, errors: list[FieldError]):
        self.errors = list(errors)
        details = "; ".join(f"{e.field}: {e.message}" for e in self.errors)
        super().__init__(f"Validation failed: {details}" if details else "Validation failed")


class PermissionDeniedError(ContentEngineError):
    """Raised when the authorization component rejects an action."""

    def __init__(self, action: str, kind: str, resource: str | None = None):
        self.action = action
        self.kind = kind
        self.resource = resource
        target = f"{kind} '{resource}'" if resource else kind
        super().__init__(f"Permission denied: cannot {action} {target}")


class ReferenceIntegrityError(ContentEngineError):
    """Raised when a referenced row (parent, relation target) does not exist."""
    pass
