"""Log a WARNING when a worrying audit action keeps recurring within an hour."""

import logging
import time
from collections import defaultdict, deque
from threading import Lock
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 3600
DEFAULT_THRESHOLDS = {
    # Client status / custom emails that could not be delivered inline.
    "NOTIFICATION_FAILED": 5,
    # Outbox rows that exhausted their retries.
    "OUTBOX_DELIVERY_FAILED": 5,
    "RATE_LIMIT_BLOCKED": 20,
}


class AuditAlertTracker:
    def __init__(self, window_seconds: int, thresholds: dict[str, int]) -> None:
        self._window_seconds = window_seconds
        self._thresholds = dict(thresholds)
        self._seen: defaultdict[str, deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def _count(self, action: str, now: float) -> int:
        seen = self._seen[action]
        seen.append(now)
        while seen[0] <= now - self._window_seconds:
            seen.popleft()
        return len(seen)

    def record(self, action: str, metadata: Optional[dict] = None) -> bool:
        """Count ``action``; returns True when this occurrence raised an alert.

        Alerts fire on the threshold-th occurrence and on every multiple of it,
        so a sustained failure keeps showing up in the logs.
        """
        threshold = self._thresholds.get(action)
        if not threshold:
            return False
        with self._lock:
            count = self._count(action, time.monotonic())
        if count % threshold:
            return False
        logger.warning(
            "ALERT audit_action=%s count=%s window_seconds=%s metadata=%s",
            action,
            count,
            self._window_seconds,
            metadata or {},
        )
        return True

    def reset(self) -> None:
        with self._lock:
            self._seen.clear()


alert_tracker = AuditAlertTracker(DEFAULT_WINDOW_SECONDS, DEFAULT_THRESHOLDS)
