import ipaddress
import time
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Optional

from fastapi import Request

from servicedesk.core.config import Settings, get_settings

API_PREFIX = "/api/v1"
SUBMIT_PATH = f"{API_PREFIX}/service-requests"
WINDOW_SECONDS = 60

_MAX_BUCKETS = 50_000
_PRUNE_INTERVAL_SECONDS = 60


@dataclass(frozen=True)
class RateLimitRule:
    """Which counter a request is charged against, and how many hits per window it allows."""

    name: str
    limit: int
    window_seconds: int = WINDOW_SECONDS

    def key(self, client_ip: str) -> str:
        return f"{self.name}:ip:{client_ip}"


def _drop_expired(bucket: deque, cutoff: float) -> None:
    while bucket and bucket[0] <= cutoff:
        bucket.popleft()


class SlidingWindowRateLimiter:
    def __init__(
        self,
        *,
        max_buckets: int = _MAX_BUCKETS,
        prune_interval_seconds: int = _PRUNE_INTERVAL_SECONDS,
    ) -> None:
        self._hits: dict[str, deque[float]] = {}
        self._lock = Lock()
        self._max_buckets = max_buckets
        self._prune_every = max(1, int(prune_interval_seconds))
        self._pruned_at = 0.0

    def allow(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        """Record a hit for ``key`` unless it already has ``limit`` hits in the window.

        Returns ``(allowed, hits_in_window)``. A non-positive limit or window
        disables limiting for the call.
        """
        if limit <= 0 or window_seconds <= 0:
            return True, 0
        now = time.monotonic()
        cutoff = now - window_seconds
        with self._lock:
            if len(self._hits) > self._max_buckets or now - self._pruned_at >= self._prune_every:
                self._prune(cutoff)
                self._pruned_at = now

            hits = self._hits.setdefault(key, deque())
            _drop_expired(hits, cutoff)
            if len(hits) >= limit:
                return False, len(hits)
            hits.append(now)
            return True, len(hits)

    def _prune(self, cutoff: float) -> None:
        for key in list(self._hits):
            _drop_expired(self._hits[key], cutoff)
            if not self._hits[key]:
                del self._hits[key]

    def bucket_count(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._pruned_at = 0.0


rate_limiter = SlidingWindowRateLimiter()


def rule_for_request(method: str, path: str, settings: Optional[Settings] = None) -> Optional[RateLimitRule]:
    """Pick the counter for an API call.

    Public submissions get their own, stricter bucket so a form flood cannot
    starve admin traffic from the same address. Returns None when the call is
    not rate limited at all.
    """
    settings = settings or get_settings()
    if not settings.rate_limit_api_enabled or method == "OPTIONS":
        return None
    if not path.startswith(API_PREFIX):
        return None
    if method == "POST" and path.rstrip("/") == SUBMIT_PATH:
        return RateLimitRule("submit", settings.rate_limit_submit_per_min)
    return RateLimitRule("api", settings.rate_limit_api_per_min)


def check_request(request: Request, limiter: Optional[SlidingWindowRateLimiter] = None) -> Optional[RateLimitRule]:
    """Charge the request to its bucket; returns the rule that blocked it, or None."""
    rule = rule_for_request(request.method, request.url.path)
    if rule is None:
        return None
    limiter = limiter or rate_limiter
    allowed, _ = limiter.allow(rule.key(get_client_ip(request) or "unknown"), rule.limit, rule.window_seconds)
    return None if allowed else rule


def ip_in_allowlist(ip: str, allowlist: list[str]) -> bool:
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return ip in allowlist
    for entry in allowlist:
        try:
            if address in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            if entry == ip:
                return True
    return False


def get_client_ip(request: Request, trusted_proxy_cidrs: Optional[list[str]] = None) -> Optional[str]:
    """Client address, honouring ``X-Real-IP`` / ``X-Forwarded-For`` only behind a trusted proxy."""
    peer_ip = request.client.host if request.client else None
    if trusted_proxy_cidrs is None:
        trusted_proxy_cidrs = get_settings().trusted_proxy_cidrs
    if not (peer_ip and trusted_proxy_cidrs and ip_in_allowlist(peer_ip, trusted_proxy_cidrs)):
        return peer_ip

    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    # Rightmost hop is the address our proxy saw.
    hops = [hop.strip() for hop in (request.headers.get("x-forwarded-for") or "").split(",") if hop.strip()]
    return hops[-1] if hops else peer_ip


def get_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent") if request else None
