"""Integration tests for /health, /metrics and the request guard pipeline."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from app.core.container import get_cache, get_error_tracker
from app.core.errors import ConflictAppError
from app.monitoring.error_tracker import ErrorCategory, ErrorTracker, Severity
from app.utils.simple_cache import CacheKeys, SimpleTTLCache


def _add_demo_routes(app: FastAPI) -> None:
    @app.get("/v1/skills")
    async def list_skills():
        return [{"id": 1, "name": "Python"}]

    @app.post("/v1/sessions")
    async def book_session():
        raise ConflictAppError(code="slot_taken", message="Time slot already booked")

    @app.get("/v1/credits/transfer")
    async def transfer():
        raise RuntimeError("ledger unavailable")


def test_health_is_healthy_on_fresh_app(client: TestClient) -> None:
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert "reason" not in body
    assert body["metrics"] == {"total_requests": 0, "avg_response_time_ms": 0.0, "total_errors": 0}


def test_health_reports_unhealthy_on_high_error_rate(app: FastAPI, client: TestClient) -> None:
    current = [datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)]
    tracker = ErrorTracker(clock=lambda: current[0])
    container = app.state.container
    container.error_tracker = tracker
    container.request_monitor.error_tracker = tracker

    for _ in range(11):
        tracker.record_error("internal", RuntimeError("db down"))
        current[0] += timedelta(seconds=6)

    resp = client.get("/health")

    assert resp.status_code == 503
    body = resp.json()
    assert body["status"] == "unhealthy"
    assert body["reason"] == "High error rate"
    assert body["metrics"]["total_errors"] == 11
    assert body["metrics"]["error_rate"] > 5


def test_health_is_not_monitored(client: TestClient) -> None:
    for _ in range(3):
        client.get("/health")

    assert client.app.state.container.request_metrics.snapshot().total_requests == 0


def test_metrics_requires_api_key(client: TestClient) -> None:
    missing = client.get("/metrics")
    wrong = client.get("/metrics", headers={"X-API-Key": "nope"})

    assert missing.status_code == 401
    assert missing.json()["error"]["code"] == "missing_api_key"
    assert wrong.status_code == 401
    assert wrong.json()["error"]["code"] == "invalid_api_key"


def test_metrics_without_configured_keys_is_forbidden(make_app) -> None:
    client = TestClient(make_app(metrics_api_keys=""))

    resp = client.get("/metrics", headers={"X-API-Key": "anything"})

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "api_keys_not_configured"


def test_metrics_snapshot_structure(app: FastAPI, metrics_headers: dict[str, str]) -> None:
    _add_demo_routes(app)
    client = TestClient(app)
    client.get("/v1/skills")
    client.get("/v1/skills")
    client.get("/v1/unknown")

    resp = client.get("/metrics", headers=metrics_headers)

    assert resp.status_code == 200
    body = resp.json()
    assert set(body) == {
        "request_metrics",
        "error_metrics",
        "recent_errors",
        "recent_alerts",
        "cache",
        "rate_limiter",
    }
    assert body["request_metrics"]["total_requests"] == 3
    assert body["request_metrics"]["requests_by_method"] == {"GET": 3}
    assert body["request_metrics"]["requests_by_status"] == {"200": 2, "404": 1}
    assert body["error_metrics"]["total_errors"] == 1
    assert body["error_metrics"]["error_breakdown"] == {"not_found": 1}
    assert body["error_metrics"]["most_common_error"] == "not_found"
    assert body["recent_errors"][0]["message"] == "HTTP 404 on GET /v1/unknown"
    assert "stack_trace" not in body["recent_errors"][0]
    assert body["cache"]["entries"] == 0
    assert body["rate_limiter"] == {"requests_per_minute": 1000, "tracked_clients": 1}


def test_handled_app_error_is_recorded_with_its_message(app: FastAPI, metrics_headers: dict[str, str]) -> None:
    _add_demo_routes(app)
    client = TestClient(app)

    resp = client.post("/v1/sessions")

    assert resp.status_code == 409
    tracker = app.state.container.error_tracker
    (record,) = tracker.get_summary(1)
    assert record.category == "conflict"
    assert record.message == "Time slot already booked"
    assert record.context["path"] == "/v1/sessions"
    assert app.state.container.alert_manager.get_recent_alerts(10) == []


def test_unhandled_exception_returns_500_and_alerts(app: FastAPI) -> None:
    _add_demo_routes(app)
    client = TestClient(app, raise_server_exceptions=False)

    resp = client.get("/v1/credits/transfer")

    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "internal_server_error"
    container = app.state.container
    (record,) = container.error_tracker.get_summary(1)
    assert record.category == "internal"
    assert record.severity == "critical"
    assert record.message == "ledger unavailable"
    (alert,) = container.alert_manager.get_recent_alerts(10)
    assert alert.type == "http_error"
    assert alert.message == "HTTP 500 error on /v1/credits/transfer"


def test_rate_limit_rejects_with_headers(make_app) -> None:
    app = make_app(rate_limit_requests_per_minute=2)
    _add_demo_routes(app)
    client = TestClient(app)

    assert client.get("/v1/skills").status_code == 200
    assert client.get("/v1/skills").status_code == 200
    resp = client.get("/v1/skills")

    assert resp.status_code == 429
    assert resp.json()["detail"] == "Rate limit exceeded. Maximum 2 requests per minute allowed"
    assert resp.headers["Retry-After"] == "30"
    assert resp.headers["X-RateLimit-Limit"] == "2"
    assert resp.headers["X-RateLimit-Remaining"] == "0"
    assert "X-RateLimit-Reset" in resp.headers
    assert app.state.container.error_tracker.error_counts == {"rate_limit": 1}


def test_rate_limit_applies_to_unrouted_requests(make_app) -> None:
    app = make_app(rate_limit_requests_per_minute=2)
    client = TestClient(app)

    statuses = [client.get("/v1/does-not-exist").status_code for _ in range(10)]

    assert statuses[:2] == [404, 404]
    assert set(statuses[2:]) == {429}
    assert len(app.state.container.rate_limiter) == 1
    assert app.state.container.error_tracker.error_counts == {"not_found": 2, "rate_limit": 8}


def test_rate_limit_applies_to_wrong_method(make_app) -> None:
    app = make_app(rate_limit_requests_per_minute=1)
    client = TestClient(app)

    assert client.post("/metrics").status_code == 405
    resp = client.post("/metrics")

    assert resp.status_code == 429
    assert resp.headers["X-RateLimit-Limit"] == "1"


def test_health_is_exempt_from_rate_limit(make_app) -> None:
    client = TestClient(make_app(rate_limit_requests_per_minute=1))

    statuses = {client.get("/health").status_code for _ in range(5)}

    assert statuses == {200}


def test_rate_limit_disabled(make_app) -> None:
    app = make_app(rate_limit_requests_per_minute=1, rate_limit_enabled=False)
    _add_demo_routes(app)
    client = TestClient(app)

    assert {client.get("/v1/skills").status_code for _ in range(3)} == {200}


def test_bearer_tokens_get_separate_buckets(make_app) -> None:
    app = make_app(rate_limit_requests_per_minute=1)
    _add_demo_routes(app)
    client = TestClient(app)

    assert client.get("/v1/skills", headers={"Authorization": "Bearer user-a"}).status_code == 200
    assert client.get("/v1/skills", headers={"Authorization": "Bearer user-b"}).status_code == 200
    assert client.get("/v1/skills", headers={"Authorization": "Bearer user-a"}).status_code == 429
    # Anonymous callers are keyed by IP, independently of token holders
    assert client.get("/v1/skills").status_code == 200
    assert len(app.state.container.rate_limiter) == 3


def test_lifespan_starts_and_stops_sweeps(app: FastAPI) -> None:
    sweeps = app.state.container.sweeps
    assert {task.name for task in sweeps} == {"rate-limit", "cache"}

    with TestClient(app) as client:
        assert all(task.running for task in sweeps)
        assert client.get("/health").status_code == 200

    assert not any(task.running for task in sweeps)


def test_openapi_documents_security_and_rate_limit(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    assert schema["components"]["securitySchemes"]["ApiKeyAuth"]["name"] == "X-API-Key"
    metrics_op = schema["paths"]["/metrics"]["get"]
    assert metrics_op["security"] == [{"ApiKeyAuth": []}]
    assert "429" in metrics_op["responses"]
    assert "429" not in schema["paths"]["/health"]["get"]["responses"]
    assert "Monitoring" in {tag["name"] for tag in schema["tags"]}


def test_server_error_alert_is_logged_once(app: FastAPI, caplog) -> None:
    _add_demo_routes(app)
    client = TestClient(app, raise_server_exceptions=False)

    with caplog.at_level("WARNING"):
        client.get("/v1/credits/transfer")
        app.state.container.alert_manager.shutdown(wait=True)

    alert_logs = [r for r in caplog.records if getattr(r, "alert_type", None) == "http_error"]
    assert len(alert_logs) == 1
    assert alert_logs[0].getMessage() == "alert.created"


def test_business_routes_reach_cache_and_error_tracker(app: FastAPI) -> None:
    loads: list[int] = []

    @app.get("/v1/badges")
    def list_badges(
        cache: Annotated[SimpleTTLCache, Depends(get_cache)],
        tracker: Annotated[ErrorTracker, Depends(get_error_tracker)],
    ):
        def _load() -> list[str]:
            loads.append(1)
            tracker.record_error(ErrorCategory.EXTERNAL, TimeoutError("badge provider slow"), Severity.LOW)
            return ["mentor", "polyglot"]

        return cache.get_or_set(CacheKeys.BADGES, _load)

    client = TestClient(app)

    assert client.get("/v1/badges").json() == ["mentor", "polyglot"]
    assert client.get("/v1/badges").json() == ["mentor", "polyglot"]
    assert len(loads) == 1
    assert app.state.container.cache.stats()["hits"] == 1
    assert app.state.container.error_tracker.error_counts == {"external": 1}
