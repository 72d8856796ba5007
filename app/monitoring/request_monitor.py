"""Per-request monitoring: aggregate latency/status metrics, error and alert hooks."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any

from app.monitoring.alerts import AlertManager
from app.monitoring.error_tracker import ErrorTracker, Severity, classify_status_code

logger = logging.getLogger(__name__)


class HTTPStatusError(Exception):
    """Stand-in error for a failed response with no exception attached."""

    def __init__(self, status_code: int, method: str, path: str) -> None:
        super().__init__(f"HTTP {status_code} on {method} {path}")
        self.status_code = status_code
        self.method = method
        self.path = path


@dataclass(frozen=True)
class RequestMetricsSnapshot:
    total_requests: int
    requests_by_method: dict[str, int]
    requests_by_status: dict[int, int]
    total_response_time_ms: float
    avg_response_time_ms: float
    slowest_request_ms: float
    fastest_request_ms: float | None


class RequestMetrics:
    """Process-wide request counters and latency aggregates."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total = 0
        self._by_method: dict[str, int] = {}
        self._by_status: dict[int, int] = {}
        self._total_time = 0.0
        self._slowest = 0.0
        self._fastest: float | None = None

    def record(self, method: str, status_code: int, duration_seconds: float) -> None:
        with self._lock:
            self._total += 1
            self._by_method[method] = self._by_method.get(method, 0) + 1
            self._by_status[status_code] = self._by_status.get(status_code, 0) + 1
            self._total_time += duration_seconds
            if duration_seconds > self._slowest:
                self._slowest = duration_seconds
            if self._fastest is None or duration_seconds < self._fastest:
                self._fastest = duration_seconds

    def snapshot(self) -> RequestMetricsSnapshot:
        with self._lock:
            avg = self._total_time / self._total if self._total else 0.0
            return RequestMetricsSnapshot(
                total_requests=self._total,
                requests_by_method=dict(self._by_method),
                requests_by_status=dict(self._by_status),
                total_response_time_ms=self._total_time * 1000,
                avg_response_time_ms=avg * 1000,
                slowest_request_ms=self._slowest * 1000,
                fastest_request_ms=None if self._fastest is None else self._fastest * 1000,
            )


class RequestMonitor:
    """Turns one finished request into metrics, log lines, errors and alerts.

    Args:
        metrics: Aggregate counters updated for every request.
        error_tracker: Receives one record per response with status >= 400.
        alert_manager: Receives ``http_error`` (status >= 500) and
            ``slow_request`` alerts.
        slow_request_threshold_seconds: Duration above which a request is slow.
        health_max_errors_per_minute: Error rate above which ``health()``
            reports unhealthy.
    """

    def __init__(
        self,
        metrics: RequestMetrics,
        error_tracker: ErrorTracker,
        alert_manager: AlertManager,
        *,
        slow_request_threshold_seconds: float = 1.0,
        health_max_errors_per_minute: float = 5.0,
    ) -> None:
        self.metrics = metrics
        self.error_tracker = error_tracker
        self.alert_manager = alert_manager
        self.slow_request_threshold_seconds = slow_request_threshold_seconds
        self.health_max_errors_per_minute = health_max_errors_per_minute

    def observe(
        self,
        method: str,
        path: str,
        client_ip: str,
        status_code: int,
        duration_seconds: float,
        error: BaseException | None = None,
    ) -> None:
        """Account for one completed request.

        Args:
            method: HTTP method.
            path: Request path.
            client_ip: Remote address as seen by the server.
            status_code: Final response status.
            duration_seconds: Wall time spent handling the request.
            error: The exception behind a failed response, when known.
        """
        self.metrics.record(method, status_code, duration_seconds)
        duration_ms = round(duration_seconds * 1000, 2)
        self.log_request(method, path, client_ip, status_code, duration_ms)

        if status_code >= 400:
            category, severity = classify_status_code(status_code)
            self.error_tracker.record_error(
                category,
                error if error is not None else HTTPStatusError(status_code, method, path),
                severity,
                {
                    "status_code": status_code,
                    "path": path,
                    "method": method,
                    "duration_ms": duration_ms,
                },
            )

            if status_code >= 500:
                self.alert_manager.create_alert(
                    "http_error",
                    f"HTTP {status_code} error on {path}",
                    Severity.HIGH,
                    {"status_code": status_code, "path": path, "method": method},
                )

        if duration_seconds > self.slow_request_threshold_seconds:
            logger.warning(
                "http.slow_request",
                extra={"method": method, "path": path, "duration_ms": duration_ms},
            )
            self.alert_manager.create_alert(
                "slow_request",
                f"Request took longer than {self.slow_request_threshold_seconds:g} second(s)",
                Severity.MEDIUM,
                {"path": path, "method": method, "duration_ms": duration_ms},
            )

    @staticmethod
    def log_request(method: str, path: str, client_ip: str, status_code: int, duration_ms: float) -> None:
        logger.info(
            "http.request",
            extra={
                "method": method,
                "path": path,
                "client_ip": client_ip,
                "status_code": status_code,
                "duration_ms": duration_ms,
            },
        )

    def health(self) -> tuple[bool, dict[str, Any]]:
        """Evaluate health from the current error rate.

        Returns:
            ``(healthy, payload)`` where payload is the body served by
            ``GET /health``.
        """
        healthy = self.error_tracker.is_healthy(self.health_max_errors_per_minute)
        error_metrics = self.error_tracker.get_metrics()
        if not healthy:
            return False, {
                "status": "unhealthy",
                "reason": "High error rate",
                "metrics": {
                    "total_errors": error_metrics.total_errors,
                    "error_rate": error_metrics.error_rate,
                },
            }

        snapshot = self.metrics.snapshot()
        return True, {
            "status": "healthy",
            "metrics": {
                "total_requests": snapshot.total_requests,
                "avg_response_time_ms": snapshot.avg_response_time_ms,
                "total_errors": error_metrics.total_errors,
            },
        }
