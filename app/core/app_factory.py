from __future__ import annotations

"""Application factory for the FastAPI app.

Centralizes app construction (settings, component container, middleware,
handlers, routers) so tests can build isolated instances.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.routes import health_router
from app.core.config import Settings, settings as default_settings
from app.core.container import ServiceContainer, build_container
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import monitoring_middleware, request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import rate_limit_middleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    container: ServiceContainer = app.state.container
    container.start()
    logger.info("Skill exchange API guard started")

    yield

    container.shutdown()
    logger.info("Skill exchange API guard shut down")


def create_app(
    settings: Settings | None = None,
    container: ServiceContainer | None = None,
    *,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Settings to use; defaults to the environment-derived settings.
        container: Pre-built component container (tests inject fakes/clocks).
        configure_logs: Reconfigure the root logger from ``settings.log``.

    Returns:
        Configured FastAPI app. Sweeps start with the lifespan.
    """
    cfg = settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(cfg.log)

    app = FastAPI(
        title="Skill Exchange API",
        description=(
            "Time-banking platform API. Every request is rate limited per client "
            "(token bucket), timed and monitored; /health and /metrics expose "
            "the resulting health state and metrics."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.container = container or build_container(cfg.app)

    # Middleware: last registered runs first
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(monitoring_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router)

    apply_openapi_customizations(app, rate_limit_exempt_paths=cfg.app.rate_limit_exempt_paths)

    return app
