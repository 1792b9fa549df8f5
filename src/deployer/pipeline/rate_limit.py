"""Fixed-window rate limiting per client identity.

The store is the only state shared between requests. It is created once by
the application factory and handed to the limiter; the store lock makes
the check-then-increment atomic so concurrent requests for the same client
can never both take the last slot.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass
class RateLimitRecord:
    """Request count for one client in the current window."""

    client_key: str
    count: int
    window_reset_at: float


@dataclass
class RateLimitDecision:
    """Result of a rate limit check."""

    allowed: bool
    remaining: int
    reset_in_seconds: int


class RateLimitStore:
    """Process-wide rate limit records plus the lock guarding them.

    Expired records are pruned at most once per window, so identities that
    never come back (spoofed ``X-Forwarded-For`` values included) do not
    accumulate.
    """

    def __init__(self):
        self._records: dict[str, RateLimitRecord] = {}
        self.lock = asyncio.Lock()

    def get(self, client_key: str) -> Optional[RateLimitRecord]:
        return self._records.get(client_key)

    def put(self, record: RateLimitRecord) -> None:
        self._records[record.client_key] = record

    def prune(self, now: float) -> int:
        """Drop records whose window has ended; returns how many were removed."""
        expired = [key for key, r in self._records.items() if now > r.window_reset_at]
        for key in expired:
            del self._records[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        """Drop all records (useful for testing)."""
        self._records.clear()


class RateLimiter:
    """Fixed-window counter: at most ``max_requests`` per ``window_seconds``."""

    def __init__(
        self,
        store: RateLimitStore,
        max_requests: int = 5,
        window_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._next_prune_at: Optional[float] = None

    def _maybe_prune(self, now: float) -> None:
        if self._next_prune_at is not None and now < self._next_prune_at:
            return
        removed = self.store.prune(now)
        if removed:
            logger.debug("Pruned %d expired rate limit records", removed)
        self._next_prune_at = now + self.window_seconds

    async def check(self, client_key: str) -> RateLimitDecision:
        """Count a request for client_key and decide whether it may proceed."""
        async with self.store.lock:
            now = self._clock()
            self._maybe_prune(now)
            record = self.store.get(client_key)

            if record is None or now > record.window_reset_at:
                self.store.put(
                    RateLimitRecord(
                        client_key=client_key,
                        count=1,
                        window_reset_at=now + self.window_seconds,
                    )
                )
                return RateLimitDecision(
                    allowed=True,
                    remaining=self.max_requests - 1,
                    reset_in_seconds=math.ceil(self.window_seconds),
                )

            reset_in = max(math.ceil(record.window_reset_at - now), 1)

            if record.count >= self.max_requests:
                logger.info(
                    "Rate limit hit for %s (%d requests, resets in %ds)",
                    client_key,
                    record.count,
                    reset_in,
                )
                return RateLimitDecision(allowed=False, remaining=0, reset_in_seconds=reset_in)

            record.count += 1
            return RateLimitDecision(
                allowed=True,
                remaining=self.max_requests - record.count,
                reset_in_seconds=reset_in,
            )


def client_identity(headers: Mapping[str, str], client_host: Optional[str] = None) -> str:
    """Derive the rate limit key for a request.

    Uses the first X-Forwarded-For hop, then X-Real-IP, then the socket
    peer address. Falls back to a shared ``unknown`` bucket.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip

    if client_host:
        return client_host

    return UNKNOWN_CLIENT
