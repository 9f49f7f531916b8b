"""Catalog lookups used by the request lifecycle plus minimal catalog upkeep.

Categories, services, templates and combos are referenced by requests but never
mutated by them. Inverse references (service -> category, template -> service)
are plain foreign keys written explicitly here; nothing is synced implicitly.
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import Any, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from servicedesk.core.config import get_settings
from servicedesk.core.errors import ConflictError, NotFoundError, StoreError, ValidationError
from servicedesk.models.catalog import Category, Combo, Service, Template
from servicedesk.schemas.catalog import CatalogItemCreate, CatalogItemOut, CatalogKind
from servicedesk.schemas.service_request import CatalogRefOut

logger = logging.getLogger(__name__)

CatalogEntity = Union[Category, Service, Template, Combo]

MODELS: dict[CatalogKind, Any] = {
    CatalogKind.CATEGORY: Category,
    CatalogKind.SERVICE: Service,
    CatalogKind.TEMPLATE: Template,
    CatalogKind.COMBO: Combo,
}

LABELS = {
    CatalogKind.CATEGORY: "Category",
    CatalogKind.SERVICE: "Service",
    CatalogKind.TEMPLATE: "Template",
    CatalogKind.COMBO: "Combo",
}

_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_SLUG_DASHES = re.compile(r"[\s_-]+")


def slugify(title: str) -> str:
    slug = _SLUG_STRIP.sub("", (title or "").strip().lower())
    slug = _SLUG_DASHES.sub("-", slug).strip("-")
    return slug or uuid.uuid4().hex[:8]


def parse_uuid(value: Any) -> Optional[uuid.UUID]:
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except ValueError:
        return None


def find_by_id(db: Session, kind: CatalogKind, entity_id: Any) -> Optional[CatalogEntity]:
    parsed = parse_uuid(entity_id)
    if parsed is None:
        return None
    return db.get(MODELS[kind], parsed)


def find_active_by_id(db: Session, kind: CatalogKind, entity_id: Any) -> Optional[CatalogEntity]:
    entity = find_by_id(db, kind, entity_id)
    if entity is None or not entity.is_active:
        return None
    return entity


def to_ref(entity: Optional[CatalogEntity]) -> Optional[CatalogRefOut]:
    if entity is None:
        return None
    return CatalogRefOut(id=str(entity.id), title=entity.title, slug=entity.slug)


def _delivery_text(entity: CatalogEntity) -> Optional[str]:
    value = getattr(entity, "delivery_value", None)
    unit = getattr(entity, "delivery_unit", None)
    if not value or not unit:
        return None
    return f"{value} {unit}"


def _price(kind: CatalogKind, entity: CatalogEntity) -> Optional[float]:
    if kind == CatalogKind.SERVICE:
        raw = entity.starting_price
    elif kind == CatalogKind.COMBO:
        raw = entity.discounted_price if entity.discounted_price is not None else entity.original_price
    else:
        return None
    return float(raw) if raw is not None else None


def item_to_out(kind: CatalogKind, entity: CatalogEntity) -> CatalogItemOut:
    category_id = getattr(entity, "category_id", None)
    service_id = getattr(entity, "service_id", None)
    return CatalogItemOut(
        id=str(entity.id),
        kind=kind,
        title=entity.title,
        slug=entity.slug,
        description=entity.description or "",
        is_active=bool(entity.is_active),
        category_id=str(category_id) if category_id else None,
        service_id=str(service_id) if service_id else None,
        price=_price(kind, entity),
        currency=getattr(entity, "currency", None),
        delivery_time=_delivery_text(entity),
        created_at=entity.created_at,
    )


def list_active(
    db: Session,
    kind: CatalogKind,
    *,
    category_id: Optional[str] = None,
    service_id: Optional[str] = None,
) -> list[CatalogEntity]:
    model = MODELS[kind]
    stmt = select(model).where(model.is_active.is_(True))
    if category_id is not None and hasattr(model, "category_id"):
        parsed = parse_uuid(category_id)
        if parsed is None:
            return []
        stmt = stmt.where(model.category_id == parsed)
    if service_id is not None and hasattr(model, "service_id"):
        parsed = parse_uuid(service_id)
        if parsed is None:
            return []
        stmt = stmt.where(model.service_id == parsed)
    if kind == CatalogKind.CATEGORY:
        stmt = stmt.order_by(model.sort_order.asc(), model.created_at.desc())
    else:
        stmt = stmt.order_by(model.created_at.desc())
    return list(db.execute(stmt).scalars().all())


def _require_parent(db: Session, kind: CatalogKind, entity_id: Optional[str], field: str) -> CatalogEntity:
    if not entity_id:
        raise ValidationError(f"{field} is required", fields=[field])
    entity = find_by_id(db, kind, entity_id)
    if entity is None:
        raise NotFoundError(f"{LABELS[kind]} not found")
    return entity


def create_item(db: Session, kind: CatalogKind, payload: CatalogItemCreate) -> CatalogEntity:
    model = MODELS[kind]
    title = payload.title.strip()
    if not title:
        raise ValidationError("Title is required", fields=["title"])
    max_length = model.__table__.c.title.type.length
    if max_length and len(title) > max_length:
        raise ValidationError(f"Title must be at most {max_length} characters", fields=["title"])

    duplicate = db.execute(
        select(model.id).where(func.lower(model.title) == title.lower())
    ).first()
    if duplicate is not None:
        raise ConflictError(f"{LABELS[kind]} with this title already exists")

    slug = slugify(title)
    if db.execute(select(model.id).where(model.slug == slug)).first() is not None:
        slug = f"{slug}-{uuid.uuid4().hex[:6]}"

    currency = payload.currency or get_settings().default_currency
    fields: dict[str, Any] = {"title": title, "slug": slug, "description": payload.description or ""}

    if kind == CatalogKind.CATEGORY:
        fields["sort_order"] = payload.sort_order
    elif kind == CatalogKind.SERVICE:
        category = _require_parent(db, CatalogKind.CATEGORY, payload.category_id, "categoryId")
        fields.update(
            category_id=category.id,
            starting_price=payload.starting_price or 0,
            currency=currency,
            delivery_value=payload.delivery_value,
            delivery_unit=payload.delivery_unit.value if payload.delivery_unit else None,
        )
    elif kind == CatalogKind.TEMPLATE:
        service = _require_parent(db, CatalogKind.SERVICE, payload.service_id, "serviceId")
        fields.update(category_id=service.category_id, service_id=service.id)
    elif kind == CatalogKind.COMBO:
        fields.update(
            original_price=payload.original_price,
            discounted_price=payload.discounted_price,
            currency=currency,
        )

    entity = model(**fields)
    db.add(entity)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Catalog create failed kind=%s", kind.value)
        raise StoreError("Failed to save catalog entry") from exc
    db.refresh(entity)
    logger.info("Catalog %s created id=%s slug=%s", kind.value, entity.id, entity.slug)
    return entity


def toggle_active(db: Session, kind: CatalogKind, entity_id: str) -> CatalogEntity:
    entity = find_by_id(db, kind, entity_id)
    if entity is None:
        raise NotFoundError(f"{LABELS[kind]} not found")
    entity.is_active = not bool(entity.is_active)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError("Failed to update catalog entry") from exc
    db.refresh(entity)
    return entity
