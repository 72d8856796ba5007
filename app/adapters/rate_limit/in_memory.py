"""In-memory token-bucket rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: a single lock serializes every read-modify-write of the map.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult

logger = logging.getLogger(__name__)


@dataclass
class ClientBudget:
    tokens: float
    last_refill: float


class InMemoryTokenBucketRateLimiter(AbstractRateLimiter):
    """Per-client token bucket refilled continuously.

    Each client owns a bucket holding at most ``requests_per_minute`` tokens.
    Tokens flow back at ``requests_per_minute`` per 60 seconds, in fractional
    amounts, every time the bucket is checked. A request costs one token.

    A client seen for the first time is admitted immediately and its bucket
    starts at ``capacity - 1``.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        each worker enforces its own independent limits.
    """

    def __init__(
        self,
        *,
        requests_per_minute: int,
        idle_retention_seconds: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            requests_per_minute: Bucket capacity and refill rate.
            idle_retention_seconds: Buckets untouched for longer than this are
                dropped by :meth:`purge_idle`.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If requests_per_minute or idle_retention_seconds are invalid.
        """
        if requests_per_minute < 1:
            raise ValueError("requests_per_minute must be >= 1")
        if idle_retention_seconds <= 0:
            raise ValueError("idle_retention_seconds must be > 0")

        self._capacity = requests_per_minute
        self._refill_per_second = requests_per_minute / 60.0
        self._idle_retention = idle_retention_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._budgets: dict[str, ClientBudget] = {}

    @property
    def requests_per_minute(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._budgets)

    def _refill(self, budget: ClientBudget, now: float) -> None:
        elapsed = max(0.0, now - budget.last_refill)
        budget.tokens = min(float(self._capacity), budget.tokens + elapsed * self._refill_per_second)
        budget.last_refill = max(budget.last_refill, now)

    def _build_result(self, *, allowed: bool, tokens: float, now: float) -> RateLimitResult:
        """Translate the bucket level into client-facing metadata."""
        missing = self._capacity - tokens
        reset_at = int(math.ceil(now + missing / self._refill_per_second))

        retry_after = None
        if not allowed:
            retry_after = max(1, int(math.ceil((1.0 - tokens) / self._refill_per_second)))

        return RateLimitResult(
            allowed=allowed,
            limit=self._capacity,
            remaining=max(0, int(math.floor(tokens))),
            reset_at=reset_at,
            retry_after_seconds=retry_after,
        )

    def consume(self, key: str) -> RateLimitResult:
        """Consume one token for ``key`` if one is available.

        Args:
            key: Unique identifier for rate limiting.

        Returns:
            RateLimitResult with allowance decision and metadata.
        """
        with self._lock:
            now = self._clock()
            budget = self._budgets.get(key)
            if budget is None:
                budget = ClientBudget(tokens=float(self._capacity - 1), last_refill=now)
                self._budgets[key] = budget
                allowed = True
            else:
                self._refill(budget, now)
                allowed = budget.tokens >= 1.0
                if allowed:
                    budget.tokens -= 1.0
            tokens = budget.tokens

        return self._build_result(allowed=allowed, tokens=tokens, now=now)

    def purge_idle(self) -> int:
        """Evict buckets whose last refill is older than the retention window."""
        with self._lock:
            now = self._clock()
            stale = [
                key
                for key, budget in self._budgets.items()
                if now - budget.last_refill > self._idle_retention
            ]
            for key in stale:
                del self._budgets[key]
            tracked = len(self._budgets)

        if stale:
            logger.debug(
                "rate_limit.purged",
                extra={"evicted": len(stale), "tracked_clients": tracked},
            )
        return len(stale)
