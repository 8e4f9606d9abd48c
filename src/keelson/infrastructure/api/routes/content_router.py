"""Content API routes.

Read and write endpoints for the items of every registered collection,
global and block, served through the content service.
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse

from keelson.application.services.content_service import ContentService
from keelson.core.exceptions import SchemaMismatchError
from keelson.core.logging import get_logger
from keelson.domain.entities.definition import EntityKind
from keelson.domain.entities.result import OperationResult
from keelson.infrastructure.api.dependencies import ActingUser, Content

logger = get_logger(__name__)

router = APIRouter()

# Failure codes with a dedicated HTTP status; every other failure is a 400
_FAILURE_STATUS = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "permission_denied": status.HTTP_403_FORBIDDEN,
    "validation_error": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


async def _require_entity(service: ContentService, kind: EntityKind, slug: str) -> None:
    try:
        await service.registry.entity(service.session, kind, slug)
    except SchemaMismatchError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


def _failure_response(result: OperationResult) -> JSONResponse:
    return JSONResponse(
        status_code=_FAILURE_STATUS.get(result.code, status.HTTP_400_BAD_REQUEST),
        content=result.to_dict(),
    )


def _split(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


@router.get("/{kind}/{slug}")
async def list_items(
    kind: EntityKind,
    slug: str,
    service: Content,
    item_status: str | None = Query(default="published", alias="status"),
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    current_page: int | None = Query(default=None, ge=1, alias="currentPage"),
    order_by: str | None = Query(default=None, alias="orderBy"),
    order: str = Query(default="desc", pattern="^(asc|desc)$"),
    group_by: str | None = Query(default=None, alias="groupBy"),
    parent_id: str | None = Query(default=None, alias="parentId"),
    sibling_of: str | None = Query(default=None, alias="siblingOf"),
    exclude_current: bool = Query(default=True, alias="excludeCurrent"),
    related_field: str | None = Query(default=None, alias="relatedField"),
    related_value: str | None = Query(default=None, alias="relatedValue"),
    include_blocks: bool = Query(default=True, alias="includeBlocks"),
    base_url: str | None = Query(default=None, alias="baseUrl"),
) -> dict[str, Any]:
    """List the items of an entity.

    `relatedField` and `relatedValue` filter by a relation or tags field;
    `relatedValue` takes comma-separated ids or slugs.
    """
    await _require_entity(service, kind, slug)

    options: dict[str, Any] = {
        "status": item_status,
        "limit": limit or service.settings.default_page_size,
        "offset": offset,
        "current_page": current_page,
        "order": order,
        "group_by": group_by,
        "parent_id": parent_id,
        "sibling_of": sibling_of,
        "exclude_current": exclude_current,
        "include_blocks": include_blocks,
        "base_url": base_url,
    }
    if order_by:
        options["order_by"] = order_by
    if related_field:
        options["where_related"] = {"field": related_field, "values": _split(related_value) or []}

    result = await service.get_items(slug, options, kind=kind)
    return result.to_dict()


@router.get("/{kind}/{slug}/items/{item_id}")
async def get_item(
    kind: EntityKind,
    slug: str,
    item_id: str,
    service: Content,
    item_status: str | None = Query(default=None, alias="status"),
    include_breadcrumbs: bool = Query(default=False, alias="includeBreadcrumbs"),
    base_url: str | None = Query(default=None, alias="baseUrl"),
) -> dict[str, Any]:
    """Fetch one item by id."""
    await _require_entity(service, kind, slug)
    item = await service.get_item(
        slug,
        item_id=item_id,
        kind=kind,
        status=item_status,
        include_breadcrumbs=include_breadcrumbs,
        base_url=base_url,
    )
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    return item


@router.get("/{kind}/{slug}/by-slug/{item_slug}")
async def get_item_by_slug(
    kind: EntityKind,
    slug: str,
    item_slug: str,
    service: Content,
    item_status: str | None = Query(default=None, alias="status"),
    include_breadcrumbs: bool = Query(default=False, alias="includeBreadcrumbs"),
    base_url: str | None = Query(default=None, alias="baseUrl"),
) -> dict[str, Any]:
    """Fetch one item by its slug."""
    await _require_entity(service, kind, slug)
    item = await service.get_item(
        slug,
        item_slug=item_slug,
        kind=kind,
        status=item_status,
        include_breadcrumbs=include_breadcrumbs,
        base_url=base_url,
    )
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    return item


@router.post("/{kind}/{slug}/items", status_code=status.HTTP_201_CREATED, response_model=None)
async def create_item(
    kind: EntityKind,
    slug: str,
    payload: dict[str, Any],
    service: Content,
    acting_user: ActingUser,
) -> dict[str, Any] | JSONResponse:
    """Create an item; the id is generated unless the payload carries one."""
    await _require_entity(service, kind, slug)
    result = await service.save_item(slug, payload.get("id"), payload, acting_user=acting_user, kind=kind)
    if not result.success:
        logger.info("Item creation rejected", kind=kind.value, slug=slug, code=result.code)
        return _failure_response(result)
    item = await service.get_item(slug, item_id=result.item_id, kind=kind)
    return {**result.to_dict(), "item": item}


@router.put("/{kind}/{slug}/items/{item_id}", response_model=None)
async def save_item(
    kind: EntityKind,
    slug: str,
    item_id: str,
    payload: dict[str, Any],
    service: Content,
    acting_user: ActingUser,
) -> dict[str, Any] | JSONResponse:
    """Create or update the item with the given id."""
    await _require_entity(service, kind, slug)
    result = await service.save_item(slug, item_id, payload, acting_user=acting_user, kind=kind)
    if not result.success:
        logger.info("Item save rejected", kind=kind.value, slug=slug, item_id=item_id, code=result.code)
        return _failure_response(result)
    item = await service.get_item(slug, item_id=result.item_id, kind=kind)
    return {**result.to_dict(), "item": item}


@router.delete("/{kind}/{slug}/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None)
async def delete_item(
    kind: EntityKind,
    slug: str,
    item_id: str,
    service: Content,
    acting_user: ActingUser,
) -> Response:
    """Delete an item with its child rows, placements and tags."""
    await _require_entity(service, kind, slug)
    result = await service.delete_item(slug, item_id, acting_user=acting_user, kind=kind)
    if not result.success:
        logger.info("Item deletion rejected", kind=kind.value, slug=slug, item_id=item_id, code=result.code)
        return _failure_response(result)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
