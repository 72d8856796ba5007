"""Composition root for the guard and monitoring components.

Everything that holds shared mutable state (limiter buckets, cache, error
history, alerts, request metrics) is constructed here, once per application,
and reached from request handlers through the dependencies at the bottom of
this module. Nothing is a module-level singleton, so each test can build its
own isolated container.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from fastapi import Request

from app.adapters.rate_limit.base import AbstractRateLimiter
from app.adapters.rate_limit.in_memory import InMemoryTokenBucketRateLimiter
from app.core.config import AppSettings
from app.monitoring.alerts import AlertManager
from app.monitoring.error_tracker import ErrorTracker
from app.monitoring.request_monitor import RequestMetrics, RequestMonitor
from app.utils.scheduler import PeriodicTask
from app.utils.simple_cache import SimpleTTLCache

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    rate_limiter: AbstractRateLimiter
    cache: SimpleTTLCache
    error_tracker: ErrorTracker
    alert_manager: AlertManager
    request_metrics: RequestMetrics
    request_monitor: RequestMonitor
    sweeps: list[PeriodicTask] = field(default_factory=list)

    def start(self) -> None:
        """Start background sweeps."""
        for task in self.sweeps:
            task.start()

    def shutdown(self) -> None:
        """Stop sweeps and the alert dispatch pool."""
        for task in self.sweeps:
            task.stop()
        self.alert_manager.shutdown(wait=False)
        logger.info("container.shutdown")


def build_container(app_settings: AppSettings) -> ServiceContainer:
    """Wire all components from settings. Sweeps are created but not started."""
    rate_limiter = InMemoryTokenBucketRateLimiter(
        requests_per_minute=app_settings.rate_limit_requests_per_minute,
        idle_retention_seconds=app_settings.rate_limit_idle_retention_seconds,
    )
    cache = SimpleTTLCache(
        default_ttl_seconds=app_settings.cache_default_ttl_seconds,
        max_entries=app_settings.cache_max_entries,
    )
    error_tracker = ErrorTracker(history_size=app_settings.error_history_size)
    alert_manager = AlertManager(max_workers=app_settings.alert_dispatch_workers)

    request_metrics = RequestMetrics()
    request_monitor = RequestMonitor(
        request_metrics,
        error_tracker,
        alert_manager,
        slow_request_threshold_seconds=app_settings.slow_request_threshold_seconds,
        health_max_errors_per_minute=app_settings.health_max_errors_per_minute,
    )

    sweeps = [
        PeriodicTask(
            "rate-limit",
            app_settings.rate_limit_cleanup_interval_seconds,
            rate_limiter.purge_idle,
        ),
        PeriodicTask(
            "cache",
            app_settings.cache_cleanup_interval_seconds,
            cache.purge_expired,
        ),
    ]

    return ServiceContainer(
        rate_limiter=rate_limiter,
        cache=cache,
        error_tracker=error_tracker,
        alert_manager=alert_manager,
        request_metrics=request_metrics,
        request_monitor=request_monitor,
        sweeps=sweeps,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_cache(request: Request) -> SimpleTTLCache:
    return get_container(request).cache


def get_error_tracker(request: Request) -> ErrorTracker:
    return get_container(request).error_tracker
