"""Error tracking: categorized counts, a rolling history and error-rate health.

The tracker is fed by the monitoring middleware (every response with status
>= 400) and by services that want to report failures that never reach the
client, such as a failed notification or a slow database query.
"""

from __future__ import annotations

import logging
import threading
import traceback
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 100
_STACK_LIMIT = 32


class ErrorCategory(StrEnum):
    DATABASE = "database"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INTERNAL = "internal"
    EXTERNAL = "external"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"


class Severity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_STATUS_CATEGORIES: dict[int, tuple[ErrorCategory, Severity]] = {
    401: (ErrorCategory.AUTHENTICATION, Severity.HIGH),
    403: (ErrorCategory.AUTHORIZATION, Severity.HIGH),
    404: (ErrorCategory.NOT_FOUND, Severity.LOW),
    409: (ErrorCategory.CONFLICT, Severity.MEDIUM),
    429: (ErrorCategory.RATE_LIMIT, Severity.MEDIUM),
}


def classify_status_code(status_code: int) -> tuple[ErrorCategory, Severity]:
    """Map an HTTP status code to an error category and severity.

    Examples:
        >>> classify_status_code(404)
        (<ErrorCategory.NOT_FOUND: 'not_found'>, <Severity.LOW: 'low'>)
        >>> classify_status_code(503)
        (<ErrorCategory.INTERNAL: 'internal'>, <Severity.CRITICAL: 'critical'>)
    """
    if 400 <= status_code < 500:
        return _STATUS_CATEGORIES.get(status_code, (ErrorCategory.VALIDATION, Severity.MEDIUM))
    if status_code >= 500:
        return ErrorCategory.INTERNAL, Severity.CRITICAL
    return ErrorCategory.INTERNAL, Severity.LOW


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ErrorRecord:
    """A single recorded error event."""

    message: str
    category: str
    stack_trace: str
    timestamp: datetime
    severity: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ErrorMetrics:
    """Point-in-time error statistics.

    Attributes:
        error_rate: Errors per minute across the retained history, measured
            between its oldest and newest record.
        most_common_error: Category with the highest cumulative count. Ties
            resolve to whichever category is met first while scanning; callers
            must not rely on a particular winner.
    """

    total_errors: int
    errors_last_hour: int
    errors_last_day: int
    most_common_error: str
    error_rate: float
    error_counts: dict[str, int]
    last_error_time: datetime | None


def _format_stack_trace(err: BaseException) -> str:
    if err.__traceback__ is not None:
        return "".join(traceback.format_exception(err))
    # Never raised: fall back to the stack of the caller that reported it
    return "".join(traceback.format_stack(limit=_STACK_LIMIT)[:-2])


class ErrorTracker:
    """Thread-safe error tracker with a bounded FIFO history.

    One lock guards counts, total and history together so that
    ``total_errors`` always equals the sum of ``error_counts``.
    """

    def __init__(
        self,
        history_size: int = DEFAULT_HISTORY_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if history_size < 1:
            raise ValueError("history_size must be >= 1")
        self._clock = clock
        self._lock = threading.Lock()
        self._history: deque[ErrorRecord] = deque(maxlen=history_size)
        self._counts: dict[str, int] = {}
        self._total = 0
        self._last_error_time: datetime | None = None

    @property
    def total_errors(self) -> int:
        with self._lock:
            return self._total

    @property
    def error_counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def record_error(
        self,
        category: str,
        err: BaseException | None,
        severity: str = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Record an error with its category, severity and context.

        Does nothing when ``err`` is None.

        Args:
            category: One of :class:`ErrorCategory` (free-form strings are kept
                as-is for callers with their own taxonomy).
            err: The exception that occurred.
            severity: One of :class:`Severity`.
            context: Extra information stored with the record (path, ids...).

        Example:
            >>> tracker.record_error(
            ...     ErrorCategory.DATABASE, exc, Severity.HIGH,
            ...     {"query": "credit_transfer", "user_id": 123},
            ... )
        """
        if err is None:
            return

        category = str(category)
        severity = str(severity)
        message = str(err) or type(err).__name__
        stack_trace = _format_stack_trace(err)

        # Stamped under the lock so history stays in time order
        with self._lock:
            record = ErrorRecord(
                message=message,
                category=category,
                stack_trace=stack_trace,
                timestamp=self._clock(),
                severity=severity,
                context=dict(context or {}),
            )
            self._counts[category] = self._counts.get(category, 0) + 1
            self._total += 1
            self._last_error_time = record.timestamp
            self._history.append(record)

        logger.error(
            "error.recorded",
            extra={
                "error_category": category,
                "severity": severity,
                "error_msg": record.message,
                "error_context": record.context,
            },
        )

    def get_metrics(self) -> ErrorMetrics:
        """Compute error statistics from one consistent snapshot."""
        now = self._clock()
        hour_ago = now - timedelta(hours=1)
        day_ago = now - timedelta(days=1)

        with self._lock:
            history = list(self._history)
            counts = dict(self._counts)
            total = self._total
            last_error_time = self._last_error_time

        errors_last_hour = sum(1 for r in history if r.timestamp > hour_ago)
        errors_last_day = sum(1 for r in history if r.timestamp > day_ago)

        most_common = ""
        max_count = 0
        for category, count in counts.items():
            if count > max_count:
                most_common, max_count = category, count

        error_rate = 0.0
        if len(history) > 1:
            span_minutes = (history[-1].timestamp - history[0].timestamp).total_seconds() / 60.0
            if span_minutes > 0:
                error_rate = len(history) / span_minutes

        return ErrorMetrics(
            total_errors=total,
            errors_last_hour=errors_last_hour,
            errors_last_day=errors_last_day,
            most_common_error=most_common,
            error_rate=error_rate,
            error_counts=counts,
            last_error_time=last_error_time,
        )

    def get_summary(self, limit: int = 10) -> list[ErrorRecord]:
        """Return the ``limit`` most recent errors, oldest first."""
        if limit <= 0:
            return []
        with self._lock:
            history = list(self._history)
        return history[-limit:]

    def is_healthy(self, max_errors_per_minute: float) -> bool:
        return self.get_metrics().error_rate <= max_errors_per_minute

    def clear_history(self) -> None:
        """Reset history, per-category counts and the total."""
        with self._lock:
            self._history.clear()
            self._counts.clear()
            self._total = 0
            self._last_error_time = None
