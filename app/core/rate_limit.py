"""Rate limiting middleware.

This module wires the token-bucket limiter into the HTTP layer. It runs as
HTTP middleware, so every inbound request is gated before routing (including
requests that match no route), except the paths listed in
``APP_RATE_LIMIT_EXEMPT_PATHS``.

Client identity:
- Bearer token (hashed) when the request carries ``Authorization: Bearer``.
- Client IP otherwise.

Usage:
    app.middleware("http")(rate_limit_middleware)  # registered inside monitoring
"""

from __future__ import annotations

import hashlib
import logging

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from app.adapters.rate_limit.base import AbstractRateLimiter
from app.core.config import AppSettings

logger = logging.getLogger(__name__)


def _hash_limiter_key(key: str) -> str:
    """Hash the limiter key for logging without exposing tokens."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def _build_rate_limit_key(request: Request, authorization: str | None) -> tuple[str, str]:
    """Build the limiter key for the current request.

    Returns:
        Tuple of (namespaced limiter key, key type).
    """

    if authorization:
        scheme, _, token = authorization.partition(" ")
        token = token.strip()
        if scheme.lower() == "bearer" and token:
            return f"token:{_hash_limiter_key(token)}", "token"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}", "ip"


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """Consume one token from the requester's bucket before routing.

    When the bucket is empty the request is answered with HTTP 429 and never
    reaches the router.
    """

    cfg: AppSettings = request.app.state.settings.app
    if not cfg.rate_limit_enabled or request.url.path in cfg.rate_limit_exempt_paths:
        return await call_next(request)

    limiter: AbstractRateLimiter = request.app.state.container.rate_limiter
    key, key_type = _build_rate_limit_key(request, request.headers.get("Authorization"))
    result = limiter.consume(key)
    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_type": key_type,
                "key_hash": _hash_limiter_key(key),
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        return await call_next(request)

    retry_after = result.retry_after_seconds or 1
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_type": key_type,
            "key_hash": _hash_limiter_key(key),
            "limit": result.limit,
            "remaining": result.remaining,
            "retry_after_s": retry_after,
            "path": request.url.path,
        },
    )

    headers: dict[str, str] = {}
    if cfg.rate_limit_include_headers:
        headers["Retry-After"] = str(retry_after)
        headers["X-RateLimit-Limit"] = str(result.limit)
        headers["X-RateLimit-Remaining"] = str(result.remaining)
        headers["X-RateLimit-Reset"] = str(result.reset_at)

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": f"Rate limit exceeded. Maximum {result.limit} requests per minute allowed"},
        headers=headers or None,
    )
