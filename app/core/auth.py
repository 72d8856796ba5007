"""API key authentication for operational endpoints.

``GET /metrics`` exposes error messages and traffic shape, so it is guarded
by an ``X-API-Key`` header checked against a comma-separated list from the
environment (``APP_METRICS_API_KEYS``). User authentication for the business
API lives in the auth service and is not handled here.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Annotated

from fastapi import Header, Request

from app.core.config import AppSettings
from app.core.errors import AuthenticationAppError, AuthorizationAppError

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> sorted(parse_api_keys("key1, key2 , key3 "))
        ['key1', 'key2', 'key3']
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def _key_fingerprint(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def validate_api_key(provided_key: str | None, cfg: AppSettings) -> None:
    """Validate that the provided key is one of the configured metrics keys.

    Pure validation logic without FastAPI dependencies for easy testing.

    Raises:
        AuthenticationAppError: If the key is missing or not recognized.
        AuthorizationAppError: If keys are required but none are configured.
    """
    if not cfg.metrics_api_key_required:
        return

    valid_keys = parse_api_keys(cfg.metrics_api_keys)
    if not valid_keys:
        logger.error(
            "api_key_validation_failed",
            extra={"reason": "api_keys_not_configured"},
        )
        raise AuthorizationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={
                "hint": "Set APP_METRICS_API_KEYS or disable auth with APP_METRICS_API_KEY_REQUIRED=false"
            },
        )

    if not provided_key:
        logger.warning("api_key_validation_failed", extra={"reason": "missing_api_key"})
        raise AuthenticationAppError(
            code="missing_api_key",
            message="Missing API key. Provide X-API-Key header.",
        )

    if provided_key not in valid_keys:
        logger.warning(
            "api_key_validation_failed",
            extra={"reason": "invalid_api_key", "key_fingerprint": _key_fingerprint(provided_key)},
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_metrics_api_key(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency guarding operational endpoints.

    Usage:
        @router.get("/metrics", dependencies=[Depends(verify_metrics_api_key)])
    """
    validate_api_key(x_api_key, request.app.state.settings.app)
