"""Result shapes returned by the content service."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class OperationResult:
    """Outcome of a save or delete.

    Failures carry a message meant to be displayed verbatim.
    """

    success: bool
    item_id: str | None = None
    error: str | None = None
    code: str | None = None
    details: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def ok(cls, item_id: str | None = None) -> "OperationResult":
        return cls(success=True, item_id=item_id)

    @classmethod
    def failure(cls, error: str, code: str = "error", details: list[dict[str, Any]] | None = None) -> "OperationResult":
        return cls(success=False, error=error, code=code, details=list(details or []))

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            data: dict[str, Any] = {"success": True}
            if self.item_id is not None:
                data["item_id"] = self.item_id
            return data
        data = {"success": False, "error": self.error, "code": self.code}
        if self.details:
            data["details"] = self.details
        return data


@dataclass
class Pagination:
    """Page information of a list result."""

    page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool

    @classmethod
    def build(cls, total: int, limit: int, offset: int) -> "Pagination":
        page = offset // limit + 1 if limit else 1
        total_pages = (total + limit - 1) // limit if limit else 1
        return cls(
            page=page,
            page_size=limit,
            total_items=total,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_previous_page=page > 1,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "page_size": self.page_size,
            "total_items": self.total_items,
            "total_pages": self.total_pages,
            "has_next_page": self.has_next_page,
            "has_previous_page": self.has_previous_page,
        }


@dataclass
class ItemListResult:
    """Outcome of a list query."""

    items: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    has_more: bool = False
    pagination: Pagination | None = None
    grouped: dict[str, list[dict[str, Any]]] | None = None

    @classmethod
    def empty(cls) -> "ItemListResult":
        return cls()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "items": self.items,
            "total": self.total,
            "has_more": self.has_more,
        }
        if self.pagination is not None:
            data["pagination"] = self.pagination.to_dict()
        if self.grouped is not None:
            data["grouped"] = self.grouped
        return data
