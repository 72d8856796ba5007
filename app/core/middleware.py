"""HTTP middleware for request correlation and monitoring.

``request_id_middleware``:
- Accepts an incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for log correlation
- Echoes request_id and total duration in response headers

``monitoring_middleware``:
- Times every request and hands the outcome to the container's RequestMonitor
  (aggregate metrics, error tracking, alerts)
- Observes unhandled exceptions as status 500 before re-raising them

Usage:
    app.middleware("http")(rate_limit_middleware)  # app.core.rate_limit
    app.middleware("http")(monitoring_middleware)
    app.middleware("http")(request_id_middleware)  # registered last = outermost
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from app.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Propagate a correlation id through logs and response headers.

    Example:
        >>> # Request arrives with {"X-Request-ID": "req-abc-123"}
        >>> # Response includes:
        >>> # {"X-Request-ID": "req-abc-123", "X-Request-Duration-ms": "45.67"}
    """

    header_name = request.app.state.settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def monitoring_middleware(request: Request, call_next) -> Response:
    """Record timing, status and failures of every non-excluded request."""

    path = request.url.path
    if path in request.app.state.settings.app.monitoring_excluded_paths:
        return await call_next(request)

    monitor = request.app.state.container.request_monitor
    method = request.method
    client_ip = request.client.host if request.client else "unknown"

    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    except Exception as exc:
        monitor.observe(method, path, client_ip, 500, time.perf_counter() - start, error=exc)
        raise

    duration = time.perf_counter() - start
    monitor.observe(
        method,
        path,
        client_ip,
        response.status_code,
        duration,
        error=getattr(request.state, "app_error", None),
    )
    return response
