from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from servicedesk.core.auth import CurrentUser, require_roles
from servicedesk.core.dependencies import get_db
from servicedesk.core.errors import ServiceDeskError, to_http_exception
from servicedesk.schemas.service_request import (
    AssignRequest,
    AuditLogOut,
    CustomEmailRequest,
    DashboardStatsOut,
    DeliverableCreateRequest,
    NoteCreateRequest,
    NotificationResultOut,
    PricingUpdateRequest,
    PriorityUpdateRequest,
    ServiceRequestCreate,
    ServiceRequestListResponse,
    ServiceRequestOut,
    ServiceRequestPublicOut,
    ServiceRequestTransitionOut,
    StatusUpdateRequest,
    TimelineUpdateRequest,
)
from servicedesk.services import request_lifecycle
from servicedesk.services.request_lifecycle import Actor, TransitionResult
from servicedesk.utils.rate_limit import get_client_ip, get_user_agent

router = APIRouter()

admin_only = require_roles("ADMIN")


def _actor(request: Request, user: Optional[CurrentUser] = None) -> Actor:
    if user is None:
        return Actor(
            actor_type="CLIENT",
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
    return Actor(
        actor_type=user.role,
        actor_id=user.id,
        name=user.display_name,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )


def _transition_to_out(result: TransitionResult) -> ServiceRequestTransitionOut:
    notification = None
    if result.notification is not None:
        notification = NotificationResultOut(
            success=result.notification.success,
            message_id=result.notification.message_id,
            error=result.notification.error,
        )
    return ServiceRequestTransitionOut(**result.request.model_dump(), notification=notification)


# ── Public ────────────────────────────────────────────────────


@router.post("/service-requests", response_model=ServiceRequestOut, status_code=201)
async def create_service_request(
    payload: ServiceRequestCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    try:
        return request_lifecycle.create_service_request(db, payload, actor=_actor(request))
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc


@router.get("/service-requests/track/{request_id}", response_model=ServiceRequestPublicOut)
async def track_service_request(request_id: str, db: Session = Depends(get_db)):
    try:
        return request_lifecycle.get_by_public_id(db, request_id)
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc


# ── Admin ─────────────────────────────────────────────────────


@router.get("/service-requests/admin", response_model=ServiceRequestListResponse)
async def list_service_requests(
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    request_type: Optional[str] = Query(None, alias="requestType"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        return request_lifecycle.list_requests(
            db,
            status=status,
            priority=priority,
            request_type=request_type,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc


@router.get("/service-requests/admin/dashboard-stats", response_model=DashboardStatsOut)
async def dashboard_stats(
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    return request_lifecycle.dashboard_stats(db)


@router.get("/service-requests/admin/recent", response_model=List[ServiceRequestOut])
async def recent_service_requests(
    limit: int = Query(10, ge=1, le=100),
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    return request_lifecycle.recent_requests(db, limit=limit)


@router.get("/service-requests/admin/status/{status}", response_model=List[ServiceRequestOut])
async def service_requests_by_status(
    status: str,
    limit: int = Query(50, ge=1, le=100),
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        return request_lifecycle.list_by_status(db, status, limit=limit)
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc


@router.get("/service-requests/admin/{ref}", response_model=ServiceRequestOut)
async def get_service_request(
    ref: str,
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        return request_lifecycle.get_admin_detail(db, ref)
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc


@router.get("/service-requests/admin/{ref}/history", response_model=List[AuditLogOut])
async def service_request_history(
    ref: str,
    limit: int = Query(200, ge=1, le=500),
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        return request_lifecycle.request_history(db, ref, limit=limit)
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc


@router.put("/service-requests/admin/{ref}/status", response_model=ServiceRequestTransitionOut)
async def update_status(
    ref: str,
    payload: StatusUpdateRequest,
    request: Request,
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        result = await request_lifecycle.transition_status(
            db,
            ref,
            payload.status,
            payload.admin_note,
            actor=_actor(request, current_user),
        )
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc
    return _transition_to_out(result)


@router.put("/service-requests/admin/{ref}/priority", response_model=ServiceRequestOut)
async def update_priority(
    ref: str,
    payload: PriorityUpdateRequest,
    request: Request,
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        return request_lifecycle.update_priority(db, ref, payload.priority, actor=_actor(request, current_user))
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc


@router.post("/service-requests/admin/{ref}/notes", response_model=ServiceRequestOut)
async def add_note(
    ref: str,
    payload: NoteCreateRequest,
    request: Request,
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        return request_lifecycle.append_note(
            db,
            ref,
            payload.note,
            payload.added_by,
            actor=_actor(request, current_user),
        )
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc


@router.put("/service-requests/admin/{ref}/assign", response_model=ServiceRequestOut)
async def assign_request(
    ref: str,
    payload: AssignRequest,
    request: Request,
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        return request_lifecycle.assign(db, ref, payload.assigned_to, actor=_actor(request, current_user))
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc


@router.put("/service-requests/admin/{ref}/timeline", response_model=ServiceRequestOut)
async def update_timeline(
    ref: str,
    payload: TimelineUpdateRequest,
    request: Request,
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        return request_lifecycle.update_timeline(
            db,
            ref,
            estimated_delivery=payload.estimated_delivery,
            actual_delivery=payload.actual_delivery,
            actor=_actor(request, current_user),
        )
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc


@router.put("/service-requests/admin/{ref}/pricing", response_model=ServiceRequestOut)
async def update_pricing(
    ref: str,
    payload: PricingUpdateRequest,
    request: Request,
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        return request_lifecycle.update_pricing(
            db,
            ref,
            quoted_amount=payload.quoted_amount,
            final_amount=payload.final_amount,
            currency=payload.currency,
            actor=_actor(request, current_user),
        )
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc


@router.post("/service-requests/admin/{ref}/deliverables", response_model=ServiceRequestOut)
async def add_deliverable(
    ref: str,
    payload: DeliverableCreateRequest,
    request: Request,
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        return request_lifecycle.add_deliverable(
            db,
            ref,
            file_name=payload.file_name,
            file_url=payload.file_url,
            storage_id=payload.storage_id,
            actor=_actor(request, current_user),
        )
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc


@router.delete("/service-requests/admin/{ref}", response_model=ServiceRequestTransitionOut)
async def cancel_service_request(
    ref: str,
    request: Request,
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        result = await request_lifecycle.cancel(db, ref, actor=_actor(request, current_user))
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc
    return _transition_to_out(result)


@router.post("/service-requests/admin/{ref}/send-email", response_model=NotificationResultOut)
async def send_custom_email(
    ref: str,
    payload: CustomEmailRequest,
    request: Request,
    current_user: CurrentUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    try:
        result = await request_lifecycle.send_custom_email(
            db,
            ref,
            client_name=payload.client_name,
            client_email=payload.client_email,
            subject=payload.subject,
            message=payload.message,
            actor=_actor(request, current_user),
        )
    except ServiceDeskError as exc:
        raise to_http_exception(exc) from exc

    out = NotificationResultOut(success=result.success, message_id=result.message_id, error=result.error)
    if not result.success:
        return JSONResponse(status_code=502, content=out.model_dump(by_alias=True))
    return out
