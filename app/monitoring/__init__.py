from __future__ import annotations

from app.monitoring.alerts import AlertManager, MonitoringAlert
from app.monitoring.error_tracker import (
    ErrorCategory,
    ErrorMetrics,
    ErrorRecord,
    ErrorTracker,
    Severity,
    classify_status_code,
)
from app.monitoring.request_monitor import RequestMetrics, RequestMonitor

__all__ = [
    "AlertManager",
    "ErrorCategory",
    "ErrorMetrics",
    "ErrorRecord",
    "ErrorTracker",
    "MonitoringAlert",
    "RequestMetrics",
    "RequestMonitor",
    "Severity",
    "classify_status_code",
]
