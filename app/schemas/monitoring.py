"""Pydantic schemas for the health and metrics endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Liveness/health payload served with 200 (healthy) or 503 (unhealthy)."""

    status: Literal["healthy", "unhealthy"]
    reason: str | None = Field(
        default=None,
        description="Why the service is unhealthy (absent when healthy).",
    )
    metrics: dict[str, float | int] = Field(
        default_factory=dict,
        description="Headline numbers: request count and latency, or error rate when unhealthy.",
    )


class RequestMetricsOut(BaseModel):
    total_requests: int
    requests_by_method: dict[str, int]
    requests_by_status: dict[int, int]
    avg_response_time_ms: float
    slowest_request_ms: float
    fastest_request_ms: float | None = Field(
        default=None, description="Null until the first request has been observed."
    )


class ErrorMetricsOut(BaseModel):
    total_errors: int
    errors_last_hour: int
    errors_last_day: int
    most_common_error: str = Field(
        ..., description="Category with the highest count; ties are unordered."
    )
    error_rate: float = Field(..., description="Errors per minute across the retained history.")
    error_breakdown: dict[str, int]
    last_error_time: datetime | None = None


class ErrorRecordOut(BaseModel):
    message: str
    category: str
    severity: str
    timestamp: datetime
    context: dict[str, Any] = Field(default_factory=dict)


class AlertOut(BaseModel):
    type: str
    message: str
    severity: str
    timestamp: datetime
    data: dict[str, Any] = Field(default_factory=dict)


class CacheStatsOut(BaseModel):
    default_ttl_seconds: float
    max_entries: int | None
    entries: int
    hits: int
    misses: int
    evictions: int


class RateLimiterStatsOut(BaseModel):
    requests_per_minute: int | None
    tracked_clients: int


class MetricsResponse(BaseModel):
    """Full monitoring snapshot served by GET /metrics."""

    request_metrics: RequestMetricsOut
    error_metrics: ErrorMetricsOut
    recent_errors: list[ErrorRecordOut]
    recent_alerts: list[AlertOut]
    cache: CacheStatsOut
    rate_limiter: RateLimiterStatsOut
