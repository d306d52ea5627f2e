"""Typed application errors mapped to HTTP responses by the app exception handlers."""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for errors that carry an HTTP status and a stable code."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"
    default_message = "Authentication required"


class AuthorizationError(AppError):
    status_code = 403
    code = "AUTHORIZATION_ERROR"
    default_message = "Insufficient permissions"


class CSRFError(AppError):
    status_code = 403
    code = "CSRF_TOKEN_INVALID"
    default_message = "CSRF token validation failed"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND_ERROR"
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT_ERROR"
    default_message = "Conflicting state"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
    default_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int, limit: int, reset_at: float, message: str | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.limit = limit
        self.reset_at = reset_at


class ExternalServiceError(AppError):
    """Raised when a collaborator (identity provider, database) is unreachable.

    Callers may retry; this is never a definitive deny.
    """

    status_code = 503
    code = "EXTERNAL_SERVICE_ERROR"
    default_message = "External service unavailable"


class InternalError(AppError):
    pass
