from __future__ import annotations

import asyncio
import logging

from servicedesk.core.config import get_settings
from servicedesk.core.dependencies import SessionLocal
from servicedesk.services.notification_outbox import process_notification_outbox_once

logger = logging.getLogger(__name__)


def drain_notification_outbox(*, batch_size: int, max_attempts: int) -> int:
    if SessionLocal is None:
        return 0
    db = SessionLocal()
    try:
        sent = process_notification_outbox_once(db, batch_size=batch_size, max_attempts=max_attempts)
        db.commit()
        return sent
    finally:
        db.close()


async def _notification_outbox_loop(
    *, interval_seconds: int, batch_size: int, max_attempts: int
) -> None:
    # Backoff on errors to avoid tight loops.
    error_sleep = max(10, min(60, interval_seconds))
    while True:
        try:
            settings = get_settings()
            if not settings.enable_recurring_jobs or not settings.enable_notification_outbox:
                await asyncio.sleep(interval_seconds)
                continue

            # SMTP is blocking; keep it off the event loop.
            await asyncio.to_thread(
                drain_notification_outbox,
                batch_size=batch_size,
                max_attempts=max_attempts,
            )
            await asyncio.sleep(interval_seconds)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Notification outbox worker error")
            await asyncio.sleep(error_sleep)


def start_notification_outbox_worker() -> asyncio.Task | None:
    """
    Starts the in-process outbox drain loop. Callers keep the returned task
    so it can be cancelled on shutdown.
    """
    settings = get_settings()
    interval = int(max(5, min(300, int(settings.notification_worker_interval_seconds or 30))))
    batch_size = int(max(1, min(200, int(settings.notification_worker_batch_size or 50))))
    max_attempts = int(max(1, min(20, int(settings.notification_worker_max_attempts or 5))))
    return asyncio.create_task(
        _notification_outbox_loop(
            interval_seconds=interval,
            batch_size=batch_size,
            max_attempts=max_attempts,
        )
    )
