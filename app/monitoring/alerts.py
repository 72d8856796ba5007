"""Monitoring alerts with fire-and-forget callback fan-out.

Callbacks run on a small thread pool so a slow notifier (mail, chat webhook)
never holds up the request that triggered the alert. Each callback is invoked
in isolation: an exception in one is logged and does not reach the caller
or the other callbacks.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from app.monitoring.error_tracker import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitoringAlert:
    type: str
    message: str
    severity: str
    timestamp: datetime
    data: dict[str, Any] = field(default_factory=dict)


AlertCallback = Callable[[MonitoringAlert], Any]


class AlertManager:
    """Collects alerts and notifies registered callbacks."""

    def __init__(
        self,
        max_workers: int = 4,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._alerts: list[MonitoringAlert] = []
        self._callbacks: list[AlertCallback] = []
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="alert-callback")
        self._closed = False

    def register_callback(self, callback: AlertCallback) -> None:
        """Register a callback invoked once for every alert created afterwards.

        Example:
            >>> manager.register_callback(lambda alert: send_email(alert.message))
        """
        with self._lock:
            self._callbacks.append(callback)

    def create_alert(
        self,
        alert_type: str,
        message: str,
        severity: str,
        data: dict[str, Any] | None = None,
    ) -> MonitoringAlert:
        """Store an alert and dispatch it to every registered callback.

        Returns immediately; callbacks are not awaited.
        """
        alert = MonitoringAlert(
            type=alert_type,
            message=message,
            severity=str(severity),
            timestamp=self._clock(),
            data=dict(data or {}),
        )

        with self._lock:
            self._alerts.append(alert)
            callbacks = list(self._callbacks)
            closed = self._closed

        logger.warning(
            "alert.created",
            extra={
                "alert_type": alert_type,
                "alert_message": message,
                "severity": alert.severity,
                "alert_data": alert.data,
            },
        )

        if closed:
            logger.debug("alert.dispatch_skipped", extra={"alert_type": alert_type, "reason": "shutdown"})
            return alert

        for callback in callbacks:
            try:
                self._executor.submit(self._invoke, callback, alert)
            except RuntimeError:
                # Pool shut down between the check above and submit()
                logger.debug("alert.dispatch_skipped", extra={"alert_type": alert_type, "reason": "shutdown"})
                break
        return alert

    def get_recent_alerts(self, limit: int = 10) -> list[MonitoringAlert]:
        """Return the ``limit`` most recent alerts, oldest first."""
        if limit <= 0:
            return []
        with self._lock:
            return self._alerts[-limit:]

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting dispatches; with ``wait`` block until queued callbacks ran."""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _invoke(callback: AlertCallback, alert: MonitoringAlert) -> None:
        try:
            callback(alert)
        except Exception:
            logger.exception(
                "alert.callback_failed",
                extra={
                    "alert_type": alert.type,
                    "callback": getattr(callback, "__qualname__", repr(callback)),
                },
            )
