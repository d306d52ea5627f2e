"""Exception handlers and HTTP middlewares shared by every route."""

from __future__ import annotations

import logging
import math

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from paylink.core.config import settings
from paylink.core.csrf import validate_csrf
from paylink.core.errors import AppError, CSRFError, ExternalServiceError, InternalError, RateLimitError
from paylink.utils.client import client_key

logger = logging.getLogger(__name__)

GENERAL_LIMITER: str = "general"
# Signature-authenticated server-to-server callbacks.
CSRF_EXEMPT_PREFIXES: tuple[str, ...] = ("/api/v1/webhooks/",)


def error_response(exc: AppError, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_payload()), headers=headers)


def rate_limit_headers(exc: RateLimitError) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(exc.limit),
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": str(math.ceil(exc.reset_at)),
        "Retry-After": str(exc.retry_after),
    }


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("[HTTP] %s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.info("[HTTP] %s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.code)
        headers = rate_limit_headers(exc) if isinstance(exc, RateLimitError) else None
        return error_response(exc, headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "code": "VALIDATION_ERROR", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(OperationalError)
    async def database_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
        logger.error("[HTTP] database unavailable on %s %s: %s", request.method, request.url.path, exc)
        return error_response(ExternalServiceError("Database unavailable"))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("[HTTP] unhandled error on %s %s", request.method, request.url.path)
        return error_response(InternalError(str(exc) if settings.debug else None))


def install_security_middleware(app: FastAPI) -> None:
    """Register the CSRF guard, then the general limiter so it runs first."""

    @app.middleware("http")
    async def csrf_guard(request: Request, call_next):
        if not request.url.path.startswith(CSRF_EXEMPT_PREFIXES):
            try:
                validate_csrf(request)
            except CSRFError as exc:
                logger.warning("[CSRF] rejected %s %s", request.method, request.url.path)
                return error_response(exc)
        return await call_next(request)

    @app.middleware("http")
    async def general_rate_limit(request: Request, call_next):
        registry = getattr(request.app.state, "rate_limiters", None)
        if registry is None or GENERAL_LIMITER not in registry:
            return await call_next(request)

        result = registry.get(GENERAL_LIMITER).check(client_key(request))
        if not result.allowed:
            exc = RateLimitError(retry_after=result.retry_after, limit=result.limit, reset_at=result.reset_at)
            return error_response(exc, result.headers())

        response = await call_next(request)
        # Route-level limiters are stricter; keep their headers when present.
        if "X-RateLimit-Limit" not in response.headers:
            for name, value in result.headers().items():
                response.headers[name] = value
        return response
