"""Application-level exception types.

Domain errors raised by the business layer are translated into consistent
JSON error responses by ``app.core.exception_handlers``. Each subclass pins
the HTTP status it maps to, so the monitoring middleware classifies it like
any other response with that status.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    field: str
    resource: str
    resource_id: str | int
    http_status: int
    retry_after: float
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    status_code: ClassVar[int] = 400

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when credentials are missing or invalid."""

    status_code = 401


class AuthorizationAppError(AppError):
    """Raised when an authenticated caller may not perform the operation."""

    status_code = 403


class NotFoundAppError(AppError):
    status_code = 404


class ConflictAppError(AppError):
    """Raised on state conflicts (e.g. double-booking a session slot)."""

    status_code = 409
