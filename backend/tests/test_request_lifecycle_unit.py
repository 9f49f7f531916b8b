"""
Unit tests for the request lifecycle: creation, status transitions, notes,
projections, listing and the best-effort notification contract.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from servicedesk.core.errors import InvalidStatusError, NotFoundError, ValidationError
from servicedesk.models.service_request import AuditLog, NotificationOutbox, ServiceRequest
from servicedesk.schemas.service_request import ServiceRequestCreate
from servicedesk.services import request_lifecycle
from servicedesk.services.notification_gateway import NotificationResult

GATEWAY_DISPATCH = "servicedesk.services.notification_gateway.dispatch_status_update"


def _ok(message_id: str = "<msg@test>") -> AsyncMock:
    return AsyncMock(return_value=NotificationResult(success=True, message_id=message_id))


def _create(db, create_payload, **overrides):
    payload = ServiceRequestCreate.model_validate(create_payload(**overrides))
    return request_lifecycle.create_service_request(db, payload)


def _transition(db, ref, status, note=None):
    return asyncio.run(request_lifecycle.transition_status(db, ref, status, note))


# ═══════════════════════════════════════════════════════════════
# Creation
# ═══════════════════════════════════════════════════════════════


def test_create_service_request_defaults(db, catalog, create_payload):
    created = _create(db, create_payload)

    assert created.status.value == "submitted"
    assert created.priority.value == "medium"
    assert created.admin_notes == []
    assert request_lifecycle.REQUEST_ID_PATTERN.match(created.request_id)
    assert created.selection_path.selected_category.title == "Graphic Design"
    assert created.selection_path.selected_service.slug == "logo-design"
    assert created.selection_path.selected_combo is None
    assert created.requirements.custom_fields[0].name == "tagline"
    assert created.pricing.currency == "INR"

    actions = db.execute(select(AuditLog.action)).scalars().all()
    assert actions == ["REQUEST_CREATED"]


def test_create_combo_request_requires_combo(db, catalog, create_payload):
    with pytest.raises(ValidationError, match="Combo selection is required"):
        _create(
            db,
            create_payload,
            requestType="combo",
            selectionPath={"selectedCategory": str(catalog.design.id)},
        )
    assert db.execute(select(ServiceRequest)).first() is None


def test_create_service_request_requires_category_and_service(db, catalog, create_payload):
    with pytest.raises(ValidationError, match="Category and Service selection is required"):
        _create(db, create_payload, selectionPath={"selectedCategory": str(catalog.design.id)})


def test_create_combo_request_resolves_combo(db, catalog, create_payload):
    created = _create(
        db,
        create_payload,
        requestType="combo",
        selectionPath={"selectedCategory": str(catalog.design.id), "selectedCombo": str(catalog.starter.id)},
    )
    assert created.request_type.value == "combo"
    assert created.selection_path.selected_combo.title == "Starter Pack"
    assert created.selection_path.selected_service is None


def test_service_request_rejects_combo_selection(db, catalog, create_payload):
    with pytest.raises(ValidationError, match="Combo selection is not allowed") as exc_info:
        _create(
            db,
            create_payload,
            selectionPath={
                "selectedCategory": str(catalog.design.id),
                "selectedService": str(catalog.logo.id),
                "selectedCombo": str(catalog.starter.id),
            },
        )
    assert exc_info.value.fields == ["selectionPath.selectedCombo"]
    assert db.execute(select(ServiceRequest)).first() is None


def test_combo_request_rejects_service_selection(db, catalog, create_payload):
    with pytest.raises(ValidationError, match="Service selection is not allowed") as exc_info:
        _create(
            db,
            create_payload,
            requestType="combo",
            selectionPath={
                "selectedCategory": str(catalog.design.id),
                "selectedService": str(catalog.logo.id),
                "selectedCombo": str(catalog.starter.id),
            },
        )
    assert exc_info.value.fields == ["selectionPath.selectedService"]
    assert db.execute(select(ServiceRequest)).first() is None


def test_create_rejects_unknown_catalog_entry(db, catalog, create_payload):
    with pytest.raises(ValidationError, match="Service not found") as exc_info:
        _create(
            db,
            create_payload,
            selectionPath={
                "selectedCategory": str(catalog.design.id),
                "selectedService": "00000000-0000-0000-0000-00000000dead",
            },
        )
    assert exc_info.value.fields == ["selectionPath.selectedService"]


def test_create_rejects_inactive_service(db, catalog, create_payload):
    with pytest.raises(ValidationError, match="Service is not active"):
        _create(
            db,
            create_payload,
            selectionPath={"selectedCategory": str(catalog.design.id), "selectedService": str(catalog.retired.id)},
        )


def test_create_rejects_service_from_other_category(db, catalog, create_payload):
    with pytest.raises(ValidationError, match="does not belong"):
        _create(
            db,
            create_payload,
            selectionPath={"selectedCategory": str(catalog.design.id), "selectedService": str(catalog.ads.id)},
        )


def test_create_lists_every_invalid_client_field(db, catalog, create_payload):
    with pytest.raises(ValidationError) as exc_info:
        _create(db, create_payload, clientInfo={"fullName": "  ", "email": "not-an-email", "phone": "12345"})
    assert exc_info.value.fields == ["clientInfo.fullName", "clientInfo.email", "clientInfo.phone"]


def test_request_ids_are_unique(db, catalog, create_payload):
    ids = {_create(db, create_payload).request_id for _ in range(5)}
    assert len(ids) == 5


def test_create_retries_on_request_id_collision(db, catalog, create_payload):
    first = _create(db, create_payload)
    with patch.object(
        request_lifecycle,
        "generate_request_id",
        side_effect=[first.request_id, "REQ-1700000000000-ABCD"],
    ):
        second = _create(db, create_payload)
    assert second.request_id == "REQ-1700000000000-ABCD"


def test_generate_request_id_format():
    request_id = request_lifecycle.generate_request_id(now_ms=1700000000123)
    assert request_id.startswith("REQ-1700000000123-")
    assert request_lifecycle.REQUEST_ID_PATTERN.match(request_id)


# ═══════════════════════════════════════════════════════════════
# Status transitions and notification isolation
# ═══════════════════════════════════════════════════════════════


def test_transition_appends_note_and_notifies(db, catalog, create_payload):
    created = _create(db, create_payload)
    dispatch = _ok()
    with patch(GATEWAY_DISPATCH, new=dispatch):
        result = _transition(db, created.id, "reviewing", "Looks good")

    assert result.request.status.value == "reviewing"
    assert len(result.request.admin_notes) == 1
    assert result.request.admin_notes[0].note == "Looks good"
    assert result.request.admin_notes[0].added_by == "Admin"
    assert result.notification.success is True
    dispatch.assert_awaited_once_with("jane@x.com", "Jane Doe", created.request_id, "reviewing", "Looks good")


def test_transition_graph_is_unconstrained(db, catalog, create_payload):
    created = _create(db, create_payload)
    with patch(GATEWAY_DISPATCH, new=_ok()):
        _transition(db, created.request_id, "completed")
        result = _transition(db, created.request_id, "submitted")
    assert result.request.status.value == "submitted"


def test_noop_transition_does_not_notify(db, catalog, create_payload):
    created = _create(db, create_payload)
    dispatch = _ok()
    with patch(GATEWAY_DISPATCH, new=dispatch):
        result = _transition(db, created.id, "submitted", "still waiting on assets")

    dispatch.assert_not_awaited()
    assert result.notification is None
    assert [n.note for n in result.request.admin_notes] == ["still waiting on assets"]


def test_notification_failure_does_not_fail_transition(db, catalog, create_payload):
    created = _create(db, create_payload)
    failing = AsyncMock(return_value=NotificationResult(success=False, error="SMTP down"))
    with patch(GATEWAY_DISPATCH, new=failing):
        result = _transition(db, created.id, "in-progress")

    assert result.request.status.value == "in-progress"
    assert result.notification.success is False
    stored = db.execute(select(ServiceRequest).where(ServiceRequest.id == created.id)).scalar_one()
    db.refresh(stored)
    assert stored.status == "in-progress"
    actions = db.execute(select(AuditLog.action)).scalars().all()
    assert "NOTIFICATION_FAILED" in actions


def test_unconfigured_smtp_still_commits_transition(db, catalog, create_payload):
    # No SMTP settings in the test environment: the real gateway reports failure.
    created = _create(db, create_payload)
    result = _transition(db, created.id, "delivered")
    assert result.request.status.value == "delivered"
    assert result.notification.success is False
    assert "SMTP is not configured" in result.notification.error


def test_notification_failure_enqueues_outbox_when_enabled(db, catalog, create_payload, monkeypatch):
    monkeypatch.setenv("ENABLE_NOTIFICATION_OUTBOX", "true")
    created = _create(db, create_payload)
    failing = AsyncMock(return_value=NotificationResult(success=False, error="timeout"))
    with patch(GATEWAY_DISPATCH, new=failing):
        _transition(db, created.id, "completed", "Final files ready")

    row = db.execute(select(NotificationOutbox)).scalar_one()
    assert row.channel == "email"
    assert row.template_key == "STATUS_UPDATE"
    assert row.payload_json["status"] == "completed"
    assert row.payload_json["request_id"] == created.request_id


def test_transition_rejects_unknown_status(db, catalog, create_payload):
    created = _create(db, create_payload)
    with pytest.raises(InvalidStatusError):
        _transition(db, created.id, "archived")


def test_invalid_status_is_a_validation_error():
    assert issubclass(InvalidStatusError, ValidationError)


def test_transition_unknown_request_is_not_found(db, catalog):
    with pytest.raises(NotFoundError):
        _transition(db, "REQ-1-AAAA", "reviewing")


def test_cancel_notifies_with_cancelled_status(db, catalog, create_payload):
    created = _create(db, create_payload)
    dispatch = _ok()
    with patch(GATEWAY_DISPATCH, new=dispatch):
        result = asyncio.run(request_lifecycle.cancel(db, created.request_id))
    assert result.request.status.value == "cancelled"
    assert dispatch.await_args.args[3] == "cancelled"


# ═══════════════════════════════════════════════════════════════
# Priority, notes, assignment, timeline, pricing, deliverables
# ═══════════════════════════════════════════════════════════════


def test_update_priority_keeps_status_and_skips_notification(db, catalog, create_payload):
    created = _create(db, create_payload)
    dispatch = _ok()
    with patch(GATEWAY_DISPATCH, new=dispatch):
        updated = request_lifecycle.update_priority(db, created.id, "urgent")
    assert updated.priority.value == "urgent"
    assert updated.status.value == "submitted"
    dispatch.assert_not_awaited()


def test_update_priority_rejects_unknown_value(db, catalog, create_payload):
    created = _create(db, create_payload)
    with pytest.raises(ValidationError):
        request_lifecycle.update_priority(db, created.id, "critical")


def test_append_note_is_ordered_and_trimmed(db, catalog, create_payload):
    created = _create(db, create_payload)
    request_lifecycle.append_note(db, created.id, "  first  ")
    updated = request_lifecycle.append_note(db, created.id, "second", "Priya")
    assert [(n.note, n.added_by) for n in updated.admin_notes] == [("first", "Admin"), ("second", "Priya")]
    assert updated.status.value == "submitted"


def test_append_note_rejects_blank(db, catalog, create_payload):
    created = _create(db, create_payload)
    with pytest.raises(ValidationError, match="Note is required"):
        request_lifecycle.append_note(db, created.id, "   ")


def test_assign_requires_value(db, catalog, create_payload):
    created = _create(db, create_payload)
    with pytest.raises(ValidationError):
        request_lifecycle.assign(db, created.id, " ")
    assigned = request_lifecycle.assign(db, created.id, "Ravi")
    assert assigned.assigned_to == "Ravi"


def test_timeline_and_pricing_updates(db, catalog, create_payload):
    from datetime import datetime, timezone
    from decimal import Decimal

    created = _create(db, create_payload)
    eta = datetime(2026, 11, 1, 12, 0, tzinfo=timezone.utc)
    updated = request_lifecycle.update_timeline(db, created.id, estimated_delivery=eta)
    assert updated.timeline.estimated_delivery.replace(tzinfo=None) == eta.replace(tzinfo=None)
    assert updated.timeline.actual_delivery is None

    priced = request_lifecycle.update_pricing(db, created.id, quoted_amount=Decimal("2999.00"), currency="usd")
    assert priced.pricing.quoted_amount == 2999.0
    assert priced.pricing.currency == "USD"

    with pytest.raises(ValidationError):
        request_lifecycle.update_pricing(db, created.id)


def test_add_deliverable_appends(db, catalog, create_payload):
    created = _create(db, create_payload)
    request_lifecycle.add_deliverable(db, created.id, file_name="logo.svg", file_url="https://cdn.test/logo.svg")
    updated = request_lifecycle.add_deliverable(db, created.id, file_name="logo.png", file_url="https://cdn.test/logo.png")
    assert [d.file_name for d in updated.deliverables] == ["logo.svg", "logo.png"]


# ═══════════════════════════════════════════════════════════════
# Projections, listing, stats, history
# ═══════════════════════════════════════════════════════════════


def test_public_lookup_hides_admin_notes_and_internal_id(db, catalog, create_payload):
    created = _create(db, create_payload)
    for note in ("one", "two", "three"):
        request_lifecycle.append_note(db, created.id, note)

    public = request_lifecycle.get_by_public_id(db, created.request_id)
    body = public.model_dump(by_alias=True)

    assert "adminNotes" not in body
    assert "id" not in body
    assert body["requestId"] == created.request_id
    assert body["clientInfo"]["fullName"] == "Jane Doe"
    assert body["selectionPath"]["selectedService"]["title"] == "Logo Design"

    detail = request_lifecycle.get_admin_detail(db, created.request_id)
    assert len(detail.admin_notes) == 3


def test_public_lookup_unknown_request(db, catalog):
    with pytest.raises(NotFoundError):
        request_lifecycle.get_by_public_id(db, "REQ-0-ZZZZ")


def test_list_requests_paginates_and_filters(db, catalog, create_payload):
    created = [_create(db, create_payload) for _ in range(3)]
    request_lifecycle.update_priority(db, created[0].id, "high")

    page = request_lifecycle.list_requests(db, page=1, limit=2)
    assert len(page.items) == 2
    assert page.pagination.total_items == 3
    assert page.pagination.total_pages == 2
    assert page.pagination.has_next_page is True
    assert page.pagination.has_prev_page is False

    second = request_lifecycle.list_requests(db, page=2, limit=2)
    assert len(second.items) == 1
    assert second.pagination.has_next_page is False
    assert second.pagination.has_prev_page is True

    high = request_lifecycle.list_requests(db, priority="high")
    assert [item.request_id for item in high.items] == [created[0].request_id]


def test_list_requests_rejects_unknown_sort_field(db, catalog):
    with pytest.raises(ValidationError, match="sortBy"):
        request_lifecycle.list_requests(db, sort_by="clientInfo.email")


def test_list_requests_sorts_by_request_id(db, catalog, create_payload):
    created = [_create(db, create_payload) for _ in range(3)]
    listing = request_lifecycle.list_requests(db, sort_by="requestId", sort_order="asc")
    assert [item.request_id for item in listing.items] == sorted(c.request_id for c in created)


def test_dashboard_stats_counts_are_independent(db, catalog, create_payload):
    first = _create(db, create_payload)
    second = _create(db, create_payload)
    _create(db, create_payload)
    with patch(GATEWAY_DISPATCH, new=_ok()):
        _transition(db, first.id, "in-progress")
        _transition(db, second.id, "revision")
    request_lifecycle.update_priority(db, first.id, "urgent")

    stats = request_lifecycle.dashboard_stats(db)
    assert stats.submitted == 1
    assert stats.in_progress == 1
    assert stats.reviewing == 0
    assert stats.urgent == 1
    assert stats.total == 3


def test_list_by_status_and_recent(db, catalog, create_payload):
    first = _create(db, create_payload)
    _create(db, create_payload)
    with patch(GATEWAY_DISPATCH, new=_ok()):
        _transition(db, first.id, "reviewing")

    reviewing = request_lifecycle.list_by_status(db, "reviewing")
    assert [r.request_id for r in reviewing] == [first.request_id]
    assert len(request_lifecycle.recent_requests(db, limit=1)) == 1
    with pytest.raises(InvalidStatusError):
        request_lifecycle.list_by_status(db, "paused")


def test_request_history_is_newest_first(db, catalog, create_payload):
    created = _create(db, create_payload)
    request_lifecycle.update_priority(db, created.id, "low")
    history = request_lifecycle.request_history(db, created.request_id)
    assert [entry.action for entry in history][-1] == "REQUEST_CREATED"
    assert {entry.action for entry in history} == {"REQUEST_CREATED", "PRIORITY_CHANGE"}


# ═══════════════════════════════════════════════════════════════
# Custom admin email
# ═══════════════════════════════════════════════════════════════


def test_send_custom_email_requires_existing_request(db, catalog):
    with pytest.raises(NotFoundError):
        asyncio.run(
            request_lifecycle.send_custom_email(
                db,
                "REQ-0-0000",
                client_name="Jane",
                client_email="jane@x.com",
                subject="Hello",
                message="Hi",
            )
        )


def test_send_custom_email_reports_failure_without_raising(db, catalog, create_payload):
    created = _create(db, create_payload)
    failing = AsyncMock(return_value=NotificationResult(success=False, error="auth failed"))
    with patch("servicedesk.services.notification_gateway.dispatch_custom", new=failing):
        result = asyncio.run(
            request_lifecycle.send_custom_email(
                db,
                created.id,
                client_name="Jane",
                client_email="jane@x.com",
                subject="Quick question",
                message="Could you share your brand guide?",
            )
        )
    assert result.success is False
    assert result.error == "auth failed"
