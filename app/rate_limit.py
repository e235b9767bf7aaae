"""
Rate limiting.

Two layers:

  • RateLimiter – fixed-window counters keyed by arbitrary strings
    ("register:<ip>", "verify-otp:<email>", ...).  AuthService consults it
    before doing any work, using RATE_LIMIT_POLICIES.
  • limiter     – slowapi per-IP throttle for endpoints without a policy
    (session lookup / logout), applied with @limiter.limit(DEFAULT).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.clock import Clock, utc_now
from app.config import RATE_LIMIT_SWEEP_INTERVAL, TRUST_PROXY_HEADERS
from app.services.background import BackgroundWorker

logger = logging.getLogger(__name__)


# ── Policies ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RateLimitPolicy:
    """A named limit: at most *limit* hits per *window* for one key."""

    prefix: str
    limit: int
    window: timedelta

    def key(self, identifier: str) -> str:
        return f"{self.prefix}:{identifier}"


REGISTER = RateLimitPolicy("register", 3, timedelta(hours=1))
LOGIN = RateLimitPolicy("login", 5, timedelta(minutes=15))
RESEND_OTP = RateLimitPolicy("resend-otp", 3, timedelta(minutes=30))
VERIFY_OTP = RateLimitPolicy("verify-otp", 5, timedelta(minutes=10))

RATE_LIMIT_POLICIES: dict[str, RateLimitPolicy] = {
    "register": REGISTER,
    "login": LOGIN,
    "resend-code": RESEND_OTP,
    "verify-code": VERIFY_OTP,
}


# ── Fixed-window limiter ──────────────────────────────────────────────────


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime


@dataclass
class _Entry:
    count: int
    reset_at: datetime


class RateLimiter:
    """
    In-memory fixed-window counter.

    A key's window opens on its first hit and lasts *window*; hits past
    *limit* inside the window are denied.  Requests straddling a boundary
    can therefore reach 2 × limit in a short burst.

    Expired entries are treated as absent and are purged by sweep().
    Dropping an entry early (e.g. reset() or a restart) starts that key's
    window over; state is process-local and not shared between workers.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def check(self, key: str, limit: int, window: timedelta) -> RateLimitResult:
        """Record a hit for *key* and report whether it is within *limit*."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.reset_at <= now:
                entry = _Entry(count=1, reset_at=now + window)
                self._entries[key] = entry
            else:
                entry.count += 1
            count, reset_at = entry.count, entry.reset_at

        allowed = count <= limit
        if not allowed:
            logger.warning("Rate limit exceeded for %s (%d/%d)", key, count, limit)
        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, limit - count),
            reset_at=reset_at,
        )

    def hit(self, policy: RateLimitPolicy, identifier: str) -> RateLimitResult:
        return self.check(policy.key(identifier), policy.limit, policy.window)

    def sweep(self) -> int:
        """Drop expired entries.  Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.reset_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RateLimitSweeper(BackgroundWorker):
    """Periodically purges expired rate-limit entries."""

    def __init__(self, limiter: RateLimiter, *, interval: float = RATE_LIMIT_SWEEP_INTERVAL) -> None:
        super().__init__(interval=interval, name="rate-limit-sweeper")
        self._limiter = limiter

    async def _tick(self) -> None:
        removed = self._limiter.sweep()
        if removed:
            logger.debug("Swept %d expired rate-limit entries", removed)


# ── Singletons ────────────────────────────────────────────────────────────

rate_limiter = RateLimiter()


def client_ip(request: Request) -> str:
    """Resolve the caller's IP.

    Behind a trusted proxy (TRUST_PROXY_HEADERS) this is the first
    X-Forwarded-For hop; otherwise the header is client-controlled and
    ignored in favour of the socket peer.
    """
    if TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return get_remote_address(request) or "unknown"


limiter = Limiter(key_func=client_ip, default_limits=["60/minute"])

# Named rate string for use in @limiter.limit() decorators
DEFAULT = "60/minute"    # session endpoints
