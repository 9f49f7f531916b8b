from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from servicedesk.core.auth import CurrentUser, require_roles
from servicedesk.core.dependencies import get_db
from servicedesk.core.errors import NotFoundError, ServiceDeskError, to_http_exception
from servicedesk.schemas.catalog import CatalogItemCreate, CatalogItemOut, CatalogKind, CatalogListResponse
from servicedesk.services import catalog_service

router = APIRouter()


def _list(db: Session, kind: CatalogKind, **filters) -> CatalogListResponse:
    rows = catalog_service.list_active(db, kind, **filters)
    return CatalogListResponse(items=[catalog_service.item_to_out(kind, row) for row in rows])


@router.get("/catalog/categories", response_model=CatalogListResponse)
async def list_categories(db: Session = Depends(get_db)):
    return _list(db, CatalogKind.CATEGORY)


@router.get("/catalog/categories/{category_id}/services", response_model=CatalogListResponse)
async def list_category_services(category_id: str, db: Session = Depends(get_db)):
    if catalog_service.find_active_by_id(db, CatalogKind.CATEGORY, category_id) is None:
        raise to_http_exception(NotFoundError("Category not found"))
    return _list(db, CatalogKind.SERVICE, category_id=category_id)


@router.get("/catalog/templates", response_model=CatalogListResponse)
async def list_templates(
    service_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return _list(db, CatalogKind.TEMPLATE, service_id=service_id)


@router.get("/catalog/combos", response_model=CatalogListResponse)
async def list_combos(db: Session = Depends(get_db)):
    return _list(db, CatalogKind.COMBO)


@router.post("/catalog/admin/{kind}", response_model=CatalogItemOut, status_code=201)
async def create_catalog_item(
    kind: CatalogKind,
    payload: CatalogItemCreate,
    current_user: CurrentUser = Depends(require_roles("ADMIN")),
    db: Session = Depends(get_db),
):
    try:
        entity = catalog_service.create_item(db, kind, payload)
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc
    return catalog_service.item_to_out(kind, entity)


@router.put("/catalog/admin/{kind}/{entity_id}/toggle-active", response_model=CatalogItemOut)
async def toggle_catalog_item(
    kind: CatalogKind,
    entity_id: str,
    current_user: CurrentUser = Depends(require_roles("ADMIN")),
    db: Session = Depends(get_db),
):
    try:
        entity = catalog_service.toggle_active(db, kind, entity_id)
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc
    return catalog_service.item_to_out(kind, entity)
