"""
Tests for the notification outbox: enqueue, process, retry, backoff.

Covers:
  - Idempotent enqueue via dedupe_key
  - process_notification_outbox_once with a mocked SMTP boundary
  - Retry with exponential backoff, FAILED after max attempts
  - Unsupported channel handling
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from unittest.mock import patch

from sqlalchemy import select

from servicedesk.core.errors import NotificationError
from servicedesk.models.service_request import NotificationOutbox
from servicedesk.services.notification_outbox import (
    _compute_backoff,
    enqueue_notification,
    process_notification_outbox_once,
)

DELIVER = "servicedesk.services.notification_outbox.deliver_payload"


def _enqueue(db, **overrides):
    defaults = {
        "entity_type": "service_request",
        "entity_id": str(uuid.uuid4()),
        "channel": "email",
        "template_key": "STATUS_UPDATE",
        "payload_json": {
            "to": "jane@x.com",
            "client_name": "Jane",
            "request_id": "REQ-1-ABCD",
            "status": "completed",
            "admin_note": "",
        },
    }
    defaults.update(overrides)
    return enqueue_notification(db, **defaults)


def _rows(db):
    return db.execute(select(NotificationOutbox)).scalars().all()


def test_enqueue_is_idempotent(db):
    eid = str(uuid.uuid4())
    assert _enqueue(db, entity_id=eid) is True
    assert _enqueue(db, entity_id=eid) is False
    db.commit()
    assert len(_rows(db)) == 1


def test_different_payloads_create_separate_records(db):
    eid = str(uuid.uuid4())
    _enqueue(db, entity_id=eid)
    _enqueue(
        db,
        entity_id=eid,
        payload_json={"to": "jane@x.com", "client_name": "Jane", "request_id": "REQ-1-ABCD", "status": "delivered"},
    )
    db.commit()
    assert len(_rows(db)) == 2


def test_process_sends_rendered_status_email(db):
    _enqueue(db)
    db.commit()

    with patch(DELIVER, return_value="<id@test>") as deliver:
        sent = process_notification_outbox_once(db)
    db.commit()

    assert sent == 1
    payload = deliver.call_args.args[0]
    assert payload["to"] == "jane@x.com"
    assert payload["subject"] == "Service Request REQ-1-ABCD - Completed"
    row = _rows(db)[0]
    assert row.status == "SENT"
    assert row.attempt_count == 1
    assert row.last_error is None


def test_failure_schedules_retry_with_backoff(db):
    _enqueue(db)
    db.commit()

    with patch(DELIVER, side_effect=NotificationError("SMTP down")):
        sent = process_notification_outbox_once(db, max_attempts=3)
    db.commit()

    assert sent == 0
    row = _rows(db)[0]
    assert row.status == "RETRY"
    assert row.attempt_count == 1
    assert row.last_error == "SMTP down"

    # Not due yet: a second pass does nothing.
    with patch(DELIVER) as deliver:
        process_notification_outbox_once(db, max_attempts=3)
    deliver.assert_not_called()


def test_failure_at_max_attempts_marks_failed(db):
    _enqueue(db)
    db.commit()

    with patch(DELIVER, side_effect=NotificationError("SMTP down")):
        process_notification_outbox_once(db, max_attempts=1)
    db.commit()

    assert _rows(db)[0].status == "FAILED"


def test_unsupported_channel_is_retried_not_sent(db):
    _enqueue(db, channel="sms")
    db.commit()

    with patch(DELIVER) as deliver:
        sent = process_notification_outbox_once(db)
    db.commit()

    assert sent == 0
    deliver.assert_not_called()
    assert "Unsupported channel" in _rows(db)[0].last_error


def test_backoff_is_exponential_and_capped():
    assert _compute_backoff(1) == timedelta(minutes=1)
    assert _compute_backoff(2) == timedelta(minutes=2)
    assert _compute_backoff(4) == timedelta(minutes=8)
    assert _compute_backoff(20) == timedelta(minutes=60)
