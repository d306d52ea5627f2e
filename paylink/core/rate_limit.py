"""Fixed-window rate limiting over a pluggable counter store.

Each named limiter counts requests per client key inside a window of
``window_seconds``. The first hit (or the first after the window elapsed)
opens a new window with count 1; later hits increment the count and are
allowed while ``count <= max_requests``. Bursts straddling a window boundary
can reach twice the nominal rate.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from paylink.core.config import settings
from paylink.core.errors import RateLimitError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class RateLimitRecord:
    count: int
    window_reset_time: float


class CounterStore(Protocol):
    """Key-value counter with a time-to-live per window."""

    def hit(self, key: str, window_seconds: float, now: float) -> RateLimitRecord: ...

    def purge_expired(self, now: float) -> int: ...


class InMemoryCounterStore:
    """Process-local counter store. Not shared between instances."""

    def __init__(self) -> None:
        self._records: dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, window_seconds: float, now: float) -> RateLimitRecord:
        with self._lock:
            record = self._records.get(key)
            if record is None or now >= record.window_reset_time:
                record = RateLimitRecord(count=1, window_reset_time=now + window_seconds)
                self._records[key] = record
            else:
                record.count += 1
            return RateLimitRecord(count=record.count, window_reset_time=record.window_reset_time)

    def purge_expired(self, now: float) -> int:
        with self._lock:
            expired = [key for key, record in self._records.items() if now >= record.window_reset_time]
            for key in expired:
                del self._records[key]
        return len(expired)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter:
    def __init__(
        self,
        name: str,
        *,
        window_seconds: float,
        max_requests: int,
        store: CounterStore,
        clock: Clock = time.time,
    ) -> None:
        self.name = name
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._store = store
        self._clock = clock

    def check(self, key: str) -> RateLimitResult:
        now = self._clock()
        record = self._store.hit(f"{self.name}:{key}", self.window_seconds, now)
        allowed = record.count <= self.max_requests
        retry_after = max(0, math.ceil(record.window_reset_time - now))
        if not allowed:
            logger.warning("[RATE_LIMIT] %s limit exceeded for key=%s", self.name, key)
        return RateLimitResult(
            allowed=allowed,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - record.count),
            reset_at=record.window_reset_time,
            retry_after=retry_after,
        )

    def enforce(self, key: str) -> RateLimitResult:
        """Like ``check`` but raise ``RateLimitError`` on denial."""
        result = self.check(key)
        if not result.allowed:
            raise RateLimitError(retry_after=result.retry_after, limit=result.limit, reset_at=result.reset_at)
        return result


class RateLimiterRegistry:
    """Named, independent limiters sharing one counter store."""

    def __init__(self, store: CounterStore, clock: Clock = time.time) -> None:
        self.store = store
        self._clock = clock
        self._limiters: dict[str, RateLimiter] = {}

    def register(self, name: str, *, window_seconds: float, max_requests: int) -> RateLimiter:
        limiter = RateLimiter(
            name,
            window_seconds=window_seconds,
            max_requests=max_requests,
            store=self.store,
            clock=self._clock,
        )
        self._limiters[name] = limiter
        return limiter

    def get(self, name: str) -> RateLimiter:
        return self._limiters[name]

    def __contains__(self, name: str) -> bool:
        return name in self._limiters

    def purge_expired(self) -> int:
        purged = self.store.purge_expired(self._clock())
        if purged:
            logger.debug("[RATE_LIMIT] purged %s expired records", purged)
        return purged


def build_rate_limiters(store: CounterStore | None = None, clock: Clock = time.time) -> RateLimiterRegistry:
    """Create the registry configured from ``settings.rate_limits``."""
    registry = RateLimiterRegistry(store or InMemoryCounterStore(), clock=clock)
    for name, (window_seconds, max_requests) in settings.rate_limits.items():
        registry.register(name, window_seconds=window_seconds, max_requests=max_requests)
    return registry
