"""Service request lifecycle.

Every write runs as one transaction over the locked request row. Status
changes commit first; the client email is attempted afterwards and its
outcome never changes the result of the transition.
"""

from __future__ import annotations

import logging
import math
import re
import secrets
import string
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from servicedesk.core.config import get_settings
from servicedesk.core.errors import InvalidStatusError, NotFoundError, StoreError, ValidationError
from servicedesk.models.base import utcnow
from servicedesk.models.service_request import (
    REQUEST_PRIORITIES,
    REQUEST_STATUSES,
    REQUEST_TYPES,
    ServiceRequest,
    ServiceRequestDeliverable,
    ServiceRequestNote,
)
from servicedesk.schemas.catalog import CatalogKind
from servicedesk.schemas.service_request import (
    AdminNoteOut,
    AuditLogOut,
    ClientInfoOut,
    DashboardStatsOut,
    DeliverableOut,
    PaginationOut,
    PricingOut,
    Requirements,
    SelectionPathOut,
    ServiceRequestCreate,
    ServiceRequestListResponse,
    ServiceRequestOut,
    ServiceRequestPublicOut,
    TimelineOut,
)
from servicedesk.services import catalog_service, notification_gateway
from servicedesk.services.audit_log import create_audit_log, list_entity_audit_logs
from servicedesk.services.email_templates import TEMPLATE_STATUS_UPDATE
from servicedesk.services.notification_gateway import NotificationResult
from servicedesk.services.notification_outbox import CHANNEL_EMAIL, enqueue_notification

logger = logging.getLogger(__name__)

ENTITY_TYPE = "service_request"
DEFAULT_NOTE_AUTHOR = "Admin"

REQUEST_ID_ALPHABET = string.digits + string.ascii_uppercase
REQUEST_ID_PATTERN = re.compile(r"^REQ-\d+-[0-9A-Z]{4}$")
MAX_REQUEST_ID_ATTEMPTS = 5

EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")
PHONE_PATTERN = re.compile(r"^[6-9]\d{9}$")

SORT_COLUMNS = {
    "createdAt": ServiceRequest.created_at,
    "updatedAt": ServiceRequest.updated_at,
    "status": ServiceRequest.status,
    "priority": ServiceRequest.priority,
    "requestId": ServiceRequest.request_id,
}

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class Actor:
    actor_type: str
    actor_id: Optional[str] = None
    name: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


SYSTEM_ACTOR = Actor(actor_type="SYSTEM")
PUBLIC_ACTOR = Actor(actor_type="CLIENT")


@dataclass(frozen=True)
class TransitionResult:
    request: ServiceRequestOut
    notification: Optional[NotificationResult]


def generate_request_id(now_ms: Optional[int] = None) -> str:
    millis = int(now_ms if now_ms is not None else time.time() * 1000)
    suffix = "".join(secrets.choice(REQUEST_ID_ALPHABET) for _ in range(4))
    return f"REQ-{millis}-{suffix}"


def _with_for_update_if_supported(stmt, db: Session):
    # SQLite does not support `SELECT ... FOR UPDATE`.
    if db.bind is None:
        return stmt
    if db.bind.dialect.name == "sqlite":
        return stmt
    return stmt.with_for_update()


def _find_request(db: Session, ref: Any, *, lock: bool = False) -> ServiceRequest:
    """Resolve an internal UUID or a public ``REQ-...`` id."""
    raw = str(ref or "").strip()
    parsed = catalog_service.parse_uuid(raw)
    if parsed is not None:
        stmt = select(ServiceRequest).where(ServiceRequest.id == parsed)
    else:
        stmt = select(ServiceRequest).where(ServiceRequest.request_id == raw)
    if lock:
        stmt = _with_for_update_if_supported(stmt, db)
    request = db.execute(stmt).scalars().one_or_none()
    if request is None:
        raise NotFoundError("Service request not found")
    return request


def _commit(db: Session, message: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("%s", message)
        raise StoreError(message) from exc


def _audit(
    db: Session,
    request: ServiceRequest,
    action: str,
    actor: Actor,
    *,
    old_value: Optional[dict[str, Any]] = None,
    new_value: Optional[dict[str, Any]] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    create_audit_log(
        db,
        entity_type=ENTITY_TYPE,
        entity_id=str(request.id),
        action=action,
        old_value=old_value,
        new_value=new_value,
        actor_type=actor.actor_type,
        actor_id=actor.actor_id,
        ip_address=actor.ip_address,
        user_agent=actor.user_agent,
        metadata={"request_id": request.request_id, **(metadata or {})},
    )


def _next_position(db: Session, model, request: ServiceRequest) -> int:
    current = db.execute(
        select(func.coalesce(func.max(model.position), 0)).where(model.service_request_id == request.id)
    ).scalar_one()
    return int(current or 0) + 1


def _add_note(db: Session, request: ServiceRequest, note: str, added_by: str) -> ServiceRequestNote:
    row = ServiceRequestNote(
        service_request_id=request.id,
        position=_next_position(db, ServiceRequestNote, request),
        note=note,
        added_by=added_by,
        added_at=utcnow(),
    )
    db.add(row)
    request.updated_at = utcnow()
    return row


# ── Projections ───────────────────────────────────────────────


def _notes(db: Session, request: ServiceRequest) -> list[ServiceRequestNote]:
    return list(
        db.execute(
            select(ServiceRequestNote)
            .where(ServiceRequestNote.service_request_id == request.id)
            .order_by(ServiceRequestNote.position.asc())
        )
        .scalars()
        .all()
    )


def _deliverables(db: Session, request: ServiceRequest) -> list[ServiceRequestDeliverable]:
    return list(
        db.execute(
            select(ServiceRequestDeliverable)
            .where(ServiceRequestDeliverable.service_request_id == request.id)
            .order_by(ServiceRequestDeliverable.position.asc())
        )
        .scalars()
        .all()
    )


def _amount(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def _public_fields(db: Session, request: ServiceRequest) -> dict[str, Any]:
    selection = SelectionPathOut(
        selected_category=catalog_service.to_ref(
            catalog_service.find_by_id(db, CatalogKind.CATEGORY, request.selected_category_id)
        ),
        selected_service=catalog_service.to_ref(
            catalog_service.find_by_id(db, CatalogKind.SERVICE, request.selected_service_id)
        ),
        selected_template=catalog_service.to_ref(
            catalog_service.find_by_id(db, CatalogKind.TEMPLATE, request.selected_template_id)
        ),
        selected_combo=catalog_service.to_ref(
            catalog_service.find_by_id(db, CatalogKind.COMBO, request.selected_combo_id)
        ),
    )
    return {
        "request_id": request.request_id,
        "request_type": request.request_type,
        "selection_path": selection,
        "client_info": ClientInfoOut(
            full_name=request.client_full_name,
            email=request.client_email,
            phone=request.client_phone,
            business_name=request.client_business_name,
            industry=request.client_industry,
        ),
        "requirements": Requirements.model_validate(request.requirements or {}),
        "status": request.status,
        "priority": request.priority,
        "timeline": TimelineOut(
            estimated_delivery=request.estimated_delivery,
            actual_delivery=request.actual_delivery,
        ),
        "assigned_to": request.assigned_to,
        "pricing": PricingOut(
            quoted_amount=_amount(request.quoted_amount),
            final_amount=_amount(request.final_amount),
            currency=request.currency or get_settings().default_currency,
        ),
        "deliverables": [
            DeliverableOut(
                file_name=d.file_name,
                file_url=d.file_url,
                storage_id=d.storage_id,
                delivered_at=d.delivered_at,
            )
            for d in _deliverables(db, request)
        ],
        "status_changed_at": request.status_changed_at,
        "created_at": request.created_at,
        "updated_at": request.updated_at,
    }


def to_public_out(db: Session, request: ServiceRequest) -> ServiceRequestPublicOut:
    return ServiceRequestPublicOut(**_public_fields(db, request))


def to_admin_out(db: Session, request: ServiceRequest) -> ServiceRequestOut:
    notes = [AdminNoteOut(note=n.note, added_by=n.added_by, added_at=n.added_at) for n in _notes(db, request)]
    return ServiceRequestOut(id=str(request.id), admin_notes=notes, **_public_fields(db, request))


# ── Validation ────────────────────────────────────────────────


def _parse_status(value: Any) -> str:
    status = str(value or "").strip()
    if status not in REQUEST_STATUSES:
        raise InvalidStatusError(f"Invalid status: {status or '<empty>'}", fields=["status"])
    return status


def _parse_priority(value: Any) -> str:
    priority = str(value or "").strip()
    if priority not in REQUEST_PRIORITIES:
        raise ValidationError(f"Invalid priority: {priority or '<empty>'}", fields=["priority"])
    return priority


def _require_active(db: Session, kind: CatalogKind, entity_id: str, field: str):
    entity = catalog_service.find_by_id(db, kind, entity_id)
    if entity is None:
        raise ValidationError(f"{catalog_service.LABELS[kind]} not found", fields=[field])
    if not entity.is_active:
        raise ValidationError(f"{catalog_service.LABELS[kind]} is not active", fields=[field])
    return entity


def _validate_client_info(payload: ServiceRequestCreate) -> dict[str, Optional[str]]:
    info = payload.client_info
    full_name = (info.full_name or "").strip()
    email = (info.email or "").strip().lower()
    phone = (info.phone or "").strip()

    invalid: list[str] = []
    if not full_name:
        invalid.append("clientInfo.fullName")
    if not email or not EMAIL_PATTERN.match(email):
        invalid.append("clientInfo.email")
    if not phone or not PHONE_PATTERN.match(phone):
        invalid.append("clientInfo.phone")
    if invalid:
        raise ValidationError(f"Invalid client information: {', '.join(invalid)}", fields=invalid)

    return {
        "client_full_name": full_name,
        "client_email": email,
        "client_phone": phone,
        "client_business_name": (info.business_name or "").strip() or None,
        "client_industry": (info.industry or "").strip() or None,
    }


def _validate_selection(db: Session, payload: ServiceRequestCreate) -> dict[str, Any]:
    selection = payload.selection_path
    request_type = payload.request_type.value
    if request_type not in REQUEST_TYPES:
        raise ValidationError("Invalid request type", fields=["requestType"])

    if request_type == "service":
        if not selection.selected_category or not selection.selected_service:
            raise ValidationError(
                "Category and Service selection is required for service requests",
                fields=["selectionPath.selectedCategory", "selectionPath.selectedService"],
            )
        if selection.selected_combo:
            raise ValidationError(
                "Combo selection is not allowed for service requests",
                fields=["selectionPath.selectedCombo"],
            )
    else:
        if not selection.selected_combo:
            raise ValidationError(
                "Combo selection is required for combo requests",
                fields=["selectionPath.selectedCombo"],
            )
        if selection.selected_service:
            raise ValidationError(
                "Service selection is not allowed for combo requests",
                fields=["selectionPath.selectedService"],
            )
    if not selection.selected_category:
        raise ValidationError("Category selection is required", fields=["selectionPath.selectedCategory"])

    category = _require_active(db, CatalogKind.CATEGORY, selection.selected_category, "selectionPath.selectedCategory")
    refs: dict[str, Any] = {"selected_category_id": category.id}

    service = None
    if selection.selected_service:
        service = _require_active(db, CatalogKind.SERVICE, selection.selected_service, "selectionPath.selectedService")
        if service.category_id != category.id:
            raise ValidationError(
                "Selected service does not belong to the selected category",
                fields=["selectionPath.selectedService"],
            )
        refs["selected_service_id"] = service.id

    if selection.selected_template:
        template = _require_active(
            db, CatalogKind.TEMPLATE, selection.selected_template, "selectionPath.selectedTemplate"
        )
        if service is not None and template.service_id != service.id:
            raise ValidationError(
                "Selected template does not belong to the selected service",
                fields=["selectionPath.selectedTemplate"],
            )
        refs["selected_template_id"] = template.id

    if selection.selected_combo:
        combo = _require_active(db, CatalogKind.COMBO, selection.selected_combo, "selectionPath.selectedCombo")
        refs["selected_combo_id"] = combo.id

    return refs


# ── Operations ────────────────────────────────────────────────


def create_service_request(
    db: Session,
    payload: ServiceRequestCreate,
    *,
    actor: Actor = PUBLIC_ACTOR,
) -> ServiceRequestOut:
    refs = _validate_selection(db, payload)
    client = _validate_client_info(payload)
    requirements = payload.requirements.model_dump(mode="json", by_alias=True)
    currency = get_settings().default_currency

    for attempt in range(1, MAX_REQUEST_ID_ATTEMPTS + 1):
        request = ServiceRequest(
            id=uuid.uuid4(),
            request_id=generate_request_id(),
            request_type=payload.request_type.value,
            requirements=requirements,
            status="submitted",
            priority="medium",
            currency=currency,
            status_changed_at=utcnow(),
            **refs,
            **client,
        )
        db.add(request)
        try:
            db.flush()
        except IntegrityError as exc:
            db.rollback()
            if attempt == MAX_REQUEST_ID_ATTEMPTS:
                logger.exception("Service request insert failed after %s attempts", attempt)
                raise StoreError("Failed to submit service request") from exc
            logger.warning("Request id collision on %s, retrying (attempt %s)", request.request_id, attempt)
            continue
        break

    _audit(
        db,
        request,
        "REQUEST_CREATED",
        actor,
        new_value={"status": "submitted", "request_type": request.request_type, "client_email": request.client_email},
    )
    _commit(db, "Failed to submit service request")
    db.refresh(request)
    logger.info("Service request created request_id=%s type=%s", request.request_id, request.request_type)
    return to_admin_out(db, request)


def _record_notification_failure(
    db: Session,
    request: ServiceRequest,
    status: str,
    note: str,
    result: NotificationResult,
    actor: Actor,
) -> None:
    try:
        _audit(
            db,
            request,
            "NOTIFICATION_FAILED",
            actor,
            new_value={"status": status},
            metadata={"error": result.error},
        )
        if get_settings().enable_notification_outbox:
            enqueue_notification(
                db,
                entity_type=ENTITY_TYPE,
                entity_id=str(request.id),
                channel=CHANNEL_EMAIL,
                template_key=TEMPLATE_STATUS_UPDATE,
                payload_json={
                    "to": request.client_email,
                    "client_name": request.client_full_name,
                    "request_id": request.request_id,
                    "status": status,
                    "admin_note": note,
                },
            )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Could not record notification failure for request_id=%s", request.request_id)


async def transition_status(
    db: Session,
    ref: Any,
    new_status: Any,
    admin_note: Optional[str] = None,
    *,
    actor: Actor = SYSTEM_ACTOR,
) -> TransitionResult:
    status = _parse_status(new_status)
    request = _find_request(db, ref, lock=True)
    old_status = request.status
    note = (admin_note or "").strip()

    request.status = status
    request.updated_at = utcnow()
    if old_status != status:
        request.status_changed_at = utcnow()
    if note:
        _add_note(db, request, note, DEFAULT_NOTE_AUTHOR)
    _audit(
        db,
        request,
        "STATUS_CHANGE",
        actor,
        old_value={"status": old_status},
        new_value={"status": status},
        metadata={"note": note} if note else None,
    )
    _commit(db, "Failed to update request status")
    db.refresh(request)
    out = to_admin_out(db, request)
    logger.info("Request status changed request_id=%s %s -> %s", request.request_id, old_status, status)

    if old_status == status:
        return TransitionResult(request=out, notification=None)

    result = await notification_gateway.dispatch_status_update(
        request.client_email,
        request.client_full_name,
        request.request_id,
        status,
        note or None,
    )
    if not result.success:
        logger.warning(
            "Status notification failed request_id=%s status=%s error=%s",
            request.request_id,
            status,
            result.error,
        )
        _record_notification_failure(db, request, status, note, result, actor)
    return TransitionResult(request=out, notification=result)


async def cancel(db: Session, ref: Any, *, actor: Actor = SYSTEM_ACTOR) -> TransitionResult:
    return await transition_status(db, ref, "cancelled", actor=actor)


def update_priority(db: Session, ref: Any, priority: Any, *, actor: Actor = SYSTEM_ACTOR) -> ServiceRequestOut:
    value = _parse_priority(priority)
    request = _find_request(db, ref, lock=True)
    old_priority = request.priority
    request.priority = value
    request.updated_at = utcnow()
    _audit(db, request, "PRIORITY_CHANGE", actor, old_value={"priority": old_priority}, new_value={"priority": value})
    _commit(db, "Failed to update priority")
    db.refresh(request)
    return to_admin_out(db, request)


def append_note(
    db: Session,
    ref: Any,
    note: Optional[str],
    added_by: Optional[str] = None,
    *,
    actor: Actor = SYSTEM_ACTOR,
) -> ServiceRequestOut:
    text = (note or "").strip()
    if not text:
        raise ValidationError("Note is required", fields=["note"])
    author = (added_by or "").strip() or DEFAULT_NOTE_AUTHOR
    request = _find_request(db, ref, lock=True)
    row = _add_note(db, request, text, author)
    _audit(db, request, "NOTE_ADDED", actor, new_value={"note": text, "added_by": author, "position": row.position})
    _commit(db, "Failed to add note")
    db.refresh(request)
    return to_admin_out(db, request)


def assign(db: Session, ref: Any, assignee: Optional[str], *, actor: Actor = SYSTEM_ACTOR) -> ServiceRequestOut:
    value = (assignee or "").strip()
    if not value:
        raise ValidationError("Assignee is required", fields=["assignedTo"])
    request = _find_request(db, ref, lock=True)
    previous = request.assigned_to
    request.assigned_to = value
    request.updated_at = utcnow()
    _audit(db, request, "ASSIGNED", actor, old_value={"assigned_to": previous}, new_value={"assigned_to": value})
    _commit(db, "Failed to assign request")
    db.refresh(request)
    return to_admin_out(db, request)


def update_timeline(
    db: Session,
    ref: Any,
    *,
    estimated_delivery: Optional[datetime] = None,
    actual_delivery: Optional[datetime] = None,
    actor: Actor = SYSTEM_ACTOR,
) -> ServiceRequestOut:
    if estimated_delivery is None and actual_delivery is None:
        raise ValidationError(
            "At least one of estimatedDelivery or actualDelivery is required",
            fields=["estimatedDelivery", "actualDelivery"],
        )
    request = _find_request(db, ref, lock=True)
    old = {"estimated_delivery": request.estimated_delivery, "actual_delivery": request.actual_delivery}
    if estimated_delivery is not None:
        request.estimated_delivery = estimated_delivery
    if actual_delivery is not None:
        request.actual_delivery = actual_delivery
    request.updated_at = utcnow()
    _audit(
        db,
        request,
        "TIMELINE_UPDATED",
        actor,
        old_value={k: v.isoformat() if v else None for k, v in old.items()},
        new_value={
            "estimated_delivery": estimated_delivery.isoformat() if estimated_delivery else None,
            "actual_delivery": actual_delivery.isoformat() if actual_delivery else None,
        },
    )
    _commit(db, "Failed to update timeline")
    db.refresh(request)
    return to_admin_out(db, request)


def update_pricing(
    db: Session,
    ref: Any,
    *,
    quoted_amount: Optional[Decimal] = None,
    final_amount: Optional[Decimal] = None,
    currency: Optional[str] = None,
    actor: Actor = SYSTEM_ACTOR,
) -> ServiceRequestOut:
    if quoted_amount is None and final_amount is None and not currency:
        raise ValidationError("No pricing fields supplied", fields=["quotedAmount", "finalAmount", "currency"])
    request = _find_request(db, ref, lock=True)
    old = {
        "quoted_amount": _amount(request.quoted_amount),
        "final_amount": _amount(request.final_amount),
        "currency": request.currency,
    }
    if quoted_amount is not None:
        request.quoted_amount = quoted_amount
    if final_amount is not None:
        request.final_amount = final_amount
    if currency:
        request.currency = currency.strip().upper()
    request.updated_at = utcnow()
    _audit(
        db,
        request,
        "PRICING_UPDATED",
        actor,
        old_value=old,
        new_value={
            "quoted_amount": _amount(request.quoted_amount),
            "final_amount": _amount(request.final_amount),
            "currency": request.currency,
        },
    )
    _commit(db, "Failed to update pricing")
    db.refresh(request)
    return to_admin_out(db, request)


def add_deliverable(
    db: Session,
    ref: Any,
    *,
    file_name: str,
    file_url: str,
    storage_id: Optional[str] = None,
    actor: Actor = SYSTEM_ACTOR,
) -> ServiceRequestOut:
    name = (file_name or "").strip()
    url = (file_url or "").strip()
    if not name or not url:
        raise ValidationError("fileName and fileUrl are required", fields=["fileName", "fileUrl"])
    request = _find_request(db, ref, lock=True)
    row = ServiceRequestDeliverable(
        service_request_id=request.id,
        position=_next_position(db, ServiceRequestDeliverable, request),
        file_name=name,
        file_url=url,
        storage_id=(storage_id or "").strip() or None,
        delivered_at=utcnow(),
    )
    db.add(row)
    request.updated_at = utcnow()
    _audit(db, request, "DELIVERABLE_ADDED", actor, new_value={"file_name": name, "position": row.position})
    _commit(db, "Failed to add deliverable")
    db.refresh(request)
    return to_admin_out(db, request)


def get_by_public_id(db: Session, request_id: str) -> ServiceRequestPublicOut:
    value = (request_id or "").strip()
    request = db.execute(select(ServiceRequest).where(ServiceRequest.request_id == value)).scalars().one_or_none()
    if request is None:
        raise NotFoundError("Service request not found")
    return to_public_out(db, request)


def get_admin_detail(db: Session, ref: Any) -> ServiceRequestOut:
    return to_admin_out(db, _find_request(db, ref))


def list_requests(
    db: Session,
    *,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    request_type: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> ServiceRequestListResponse:
    if sort_by not in SORT_COLUMNS:
        raise ValidationError(
            f"sortBy must be one of: {', '.join(SORT_COLUMNS)}",
            fields=["sortBy"],
        )
    if page < 1:
        raise ValidationError("page must be >= 1", fields=["page"])
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", fields=["limit"])

    filters = []
    if status:
        filters.append(ServiceRequest.status == _parse_status(status))
    if priority:
        filters.append(ServiceRequest.priority == _parse_priority(priority))
    if request_type:
        if request_type not in REQUEST_TYPES:
            raise ValidationError(f"Invalid request type: {request_type}", fields=["requestType"])
        filters.append(ServiceRequest.request_type == request_type)

    total = int(db.execute(select(func.count()).select_from(ServiceRequest).where(*filters)).scalar_one())

    column = SORT_COLUMNS[sort_by]
    ordering = column.asc() if (sort_order or "").lower() == "asc" else column.desc()
    rows = (
        db.execute(
            select(ServiceRequest)
            .where(*filters)
            .order_by(ordering, ServiceRequest.request_id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        .scalars()
        .all()
    )

    total_pages = math.ceil(total / limit) if total else 0
    return ServiceRequestListResponse(
        items=[to_admin_out(db, row) for row in rows],
        pagination=PaginationOut(
            current_page=page,
            total_pages=total_pages,
            total_items=total,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
            limit=limit,
        ),
    )


def list_by_status(db: Session, status: Any, *, limit: int = 50) -> list[ServiceRequestOut]:
    value = _parse_status(status)
    rows = (
        db.execute(
            select(ServiceRequest)
            .where(ServiceRequest.status == value)
            .order_by(ServiceRequest.created_at.desc())
            .limit(max(1, min(MAX_PAGE_SIZE, int(limit))))
        )
        .scalars()
        .all()
    )
    return [to_admin_out(db, row) for row in rows]


def recent_requests(db: Session, *, limit: int = 10) -> list[ServiceRequestOut]:
    rows = (
        db.execute(
            select(ServiceRequest)
            .order_by(ServiceRequest.created_at.desc())
            .limit(max(1, min(MAX_PAGE_SIZE, int(limit))))
        )
        .scalars()
        .all()
    )
    return [to_admin_out(db, row) for row in rows]


def dashboard_stats(db: Session) -> DashboardStatsOut:
    by_status = dict(
        db.execute(select(ServiceRequest.status, func.count()).group_by(ServiceRequest.status)).all()
    )
    urgent = db.execute(
        select(func.count()).select_from(ServiceRequest).where(ServiceRequest.priority == "urgent")
    ).scalar_one()
    return DashboardStatsOut(
        submitted=int(by_status.get("submitted", 0)),
        reviewing=int(by_status.get("reviewing", 0)),
        in_progress=int(by_status.get("in-progress", 0)),
        completed=int(by_status.get("completed", 0)),
        delivered=int(by_status.get("delivered", 0)),
        cancelled=int(by_status.get("cancelled", 0)),
        urgent=int(urgent or 0),
        total=int(sum(by_status.values())),
    )


def request_history(db: Session, ref: Any, *, limit: int = 200) -> list[AuditLogOut]:
    request = _find_request(db, ref)
    logs = list_entity_audit_logs(db, entity_type=ENTITY_TYPE, entity_id=request.id, limit=limit)
    return [
        AuditLogOut(
            id=str(log.id),
            action=log.action,
            old_value=log.old_value,
            new_value=log.new_value,
            actor_type=log.actor_type,
            actor_id=log.actor_id,
            metadata=log.audit_meta,
            timestamp=log.timestamp,
        )
        for log in logs
    ]


async def send_custom_email(
    db: Session,
    ref: Any,
    *,
    client_name: str,
    client_email: str,
    subject: str,
    message: str,
    actor: Actor = SYSTEM_ACTOR,
) -> NotificationResult:
    email = (client_email or "").strip()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid client email", fields=["clientEmail"])
    request = _find_request(db, ref)
    result = await notification_gateway.dispatch_custom(
        client_name.strip(),
        email,
        subject.strip(),
        message,
        actor.name or DEFAULT_NOTE_AUTHOR,
    )
    try:
        _audit(
            db,
            request,
            "CUSTOM_EMAIL_SENT" if result.success else "NOTIFICATION_FAILED",
            actor,
            new_value={"subject": subject.strip(), "client_email": email},
            metadata={"error": result.error} if result.error else None,
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not audit custom email for request_id=%s", request.request_id)
    return result
