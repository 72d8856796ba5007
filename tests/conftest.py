"""Pytest configuration and fixtures shared across all test modules.

This file is loaded by pytest before any test module, so the environment
variables below are in place before ``app.core.config`` builds its settings.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

os.environ.setdefault("APP_METRICS_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_METRICS_API_KEYS", "test-metrics-key-123,test-metrics-key-456")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.app_factory import create_app
from app.core.config import AppSettings, Settings


def build_settings(**app_overrides) -> Settings:
    """Settings with a generous rate limit unless a test asks otherwise."""
    app_overrides.setdefault("rate_limit_requests_per_minute", 1000)
    app_overrides.setdefault("metrics_api_keys", "test-metrics-key-123")
    return Settings(app=AppSettings(**app_overrides))


@pytest.fixture
def make_app():
    """Factory building isolated apps: ``make_app(rate_limit_requests_per_minute=2)``."""
    created: list[FastAPI] = []

    def _make(**app_overrides) -> FastAPI:
        application = create_app(build_settings(**app_overrides), configure_logs=False)
        created.append(application)
        return application

    yield _make

    for application in created:
        application.state.container.alert_manager.shutdown(wait=True)


@pytest.fixture
def app(make_app) -> FastAPI:
    return make_app()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def metrics_headers() -> dict[str, str]:
    return {"X-API-Key": "test-metrics-key-123"}
