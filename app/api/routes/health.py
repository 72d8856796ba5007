from __future__ import annotations

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.auth import verify_metrics_api_key
from app.core.container import ServiceContainer, get_container
from app.schemas.monitoring import (
    AlertOut,
    CacheStatsOut,
    ErrorMetricsOut,
    ErrorRecordOut,
    HealthResponse,
    MetricsResponse,
    RateLimiterStatsOut,
    RequestMetricsOut,
)

router = APIRouter(tags=["Monitoring"])

RECENT_ITEMS_LIMIT = 10


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse, "description": "Error rate above threshold"}},
)
def health_check(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> JSONResponse:
    """Health check endpoint.

    Healthy while the tracked error rate stays at or below the configured
    maximum errors per minute (5 by default). Used by load balancers, so it
    is exempt from rate limiting and API key checks.
    """

    healthy, payload = container.request_monitor.health()
    body = HealthResponse(**payload)
    return JSONResponse(
        status_code=200 if healthy else 503,
        content=body.model_dump(mode="json", exclude_none=True),
    )


@router.get(
    "/metrics",
    response_model=MetricsResponse,
    dependencies=[Depends(verify_metrics_api_key)],
)
def metrics(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> MetricsResponse:
    """Return request, error, alert, cache and limiter metrics as one snapshot."""

    request_snapshot = container.request_metrics.snapshot()
    error_metrics = container.error_tracker.get_metrics()
    limiter = container.rate_limiter

    return MetricsResponse(
        request_metrics=RequestMetricsOut(
            total_requests=request_snapshot.total_requests,
            requests_by_method=request_snapshot.requests_by_method,
            requests_by_status=request_snapshot.requests_by_status,
            avg_response_time_ms=request_snapshot.avg_response_time_ms,
            slowest_request_ms=request_snapshot.slowest_request_ms,
            fastest_request_ms=request_snapshot.fastest_request_ms,
        ),
        error_metrics=ErrorMetricsOut(
            total_errors=error_metrics.total_errors,
            errors_last_hour=error_metrics.errors_last_hour,
            errors_last_day=error_metrics.errors_last_day,
            most_common_error=error_metrics.most_common_error,
            error_rate=error_metrics.error_rate,
            error_breakdown=error_metrics.error_counts,
            last_error_time=error_metrics.last_error_time,
        ),
        recent_errors=[
            ErrorRecordOut(
                message=record.message,
                category=record.category,
                severity=record.severity,
                timestamp=record.timestamp,
                context=record.context,
            )
            for record in container.error_tracker.get_summary(RECENT_ITEMS_LIMIT)
        ],
        recent_alerts=[
            AlertOut(**asdict(alert))
            for alert in container.alert_manager.get_recent_alerts(RECENT_ITEMS_LIMIT)
        ],
        cache=CacheStatsOut(**container.cache.stats()),
        rate_limiter=RateLimiterStatsOut(
            requests_per_minute=getattr(limiter, "requests_per_minute", None),
            tracked_clients=len(limiter),
        ),
    )
