"""
HTTP Middleware and Error Responses
===================================

Request correlation, access logging, and the mapping from service desk
errors to JSON error bodies.
"""

import time
import uuid
from typing import Callable, Dict, Type

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from servicedesk.core import (
    ApplicationException,
    AuthorizationException,
    DomainException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
    utcnow,
)
from servicedesk.shared.infrastructure.logging import (
    bind_correlation_id,
    get_logger,
    reset_correlation_id,
)

logger = get_logger(__name__)

# Checked along the exception's MRO, most specific class first.
STATUS_CODES: Dict[Type[ApplicationException], int] = {
    ResourceNotFoundException: 404,
    AuthorizationException: 403,
    ValidationException: 422,
    DomainException: 409,
    RepositoryException: 503,
}


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Reuses the caller's X-Correlation-ID or mints one.

    The id is echoed on the response, stored on request.state for the
    error handlers and bound to the logging context so that service and
    repository log lines carry it too.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        token = bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            reset_correlation_id(token)

        response.headers["X-Correlation-ID"] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log line per request, plus an X-Response-Time header."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        request_context = {
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else None,
        }

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    **request_context,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000),
                }
            )
            raise

        response_time = time.perf_counter() - start_time
        response.headers["X-Response-Time"] = f"{response_time:.3f}s"
        logger.info(
            "Request completed",
            extra={
                **request_context,
                "status_code": response.status_code,
                "response_time_ms": int(response_time * 1000),
            }
        )
        return response


def status_code_for(exc: ApplicationException) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


def _error_response(request: Request, status_code: int, detail: str, **fields) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": detail,
            **fields,
            "correlation_id": getattr(request.state, "correlation_id", None),
            "timestamp": utcnow().isoformat(),
        }
    )


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Render a service desk error as JSON.

    The status comes from STATUS_CODES; only 5xx outcomes are logged as errors.
    """
    status_code = status_code_for(exc)
    error_type = type(exc).__name__

    log = logger.error if status_code >= 500 else logger.info
    log(
        "Request rejected",
        extra={
            "path": request.url.path,
            "status_code": status_code,
            "error_type": error_type,
            "error_message": exc.message,
        }
    )
    return _error_response(request, status_code, exc.message, error_type=error_type, details=exc.details)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort 500; the exception text is only echoed in development."""
    logger.exception(
        "Unhandled exception",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
        }
    )

    settings = getattr(request.app.state, "settings", None)
    is_dev = getattr(settings, "environment", None) == "development"
    return _error_response(
        request, 500, "Internal server error",
        debug_info=str(exc) if is_dev else None,
    )
