"""Rate limiter interfaces.

The HTTP layer depends on this abstraction rather than the concrete
implementation, so a shared store can replace the in-process buckets later.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit consume operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Bucket capacity (requests per minute).
        remaining: Whole tokens left after this decision.
        reset_at: UNIX epoch seconds when the bucket will be full again.
        retry_after_seconds: Seconds until one token is available when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for per-client rate limiters."""

    @abstractmethod
    def consume(self, key: str) -> RateLimitResult:
        """Consume one unit of budget for ``key``.

        Args:
            key: Unique client identifier (e.g., token hash, IP address).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    def allow(self, key: str) -> bool:
        """Return True when the request identified by ``key`` may proceed."""
        return self.consume(key).allowed

    @abstractmethod
    def __len__(self) -> int:
        """Number of clients currently tracked."""
        raise NotImplementedError

    @abstractmethod
    def purge_idle(self) -> int:
        """Drop state for clients that have been idle past retention.

        Returns:
            Number of client entries removed.
        """
        raise NotImplementedError
