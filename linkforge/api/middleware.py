"""API middleware: request logging and error handling.

Both classes extend ``BaseHTTPMiddleware`` and override ``dispatch()``;
inside it, ``call_next(request)`` hands the request to the next layer or
to the route handler itself.

# ─── Middleware execution order ────────────────────────────────────────
#
# Starlette middleware is a stack (last added, first executed):
#
#   In main.py:
#     app.add_middleware(ErrorHandlingMiddleware)    # added 1st, inner
#     app.add_middleware(RequestLoggingMiddleware)   # added 2nd, outermost
#
#   Request flow:
#     Client -> RequestLogging -> ErrorHandling -> route handler
#   Response flow:
#     Client <- RequestLogging <- ErrorHandling <- route handler
#
# RequestLoggingMiddleware therefore records the *final* status code,
# including the 4xx/5xx that ErrorHandling substituted for an exception.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from linkforge.api.schemas import ErrorResponse
from linkforge.utils.errors import (
    ConfigurationError,
    DuplicateJobError,
    InvalidQueryError,
    JobNotFoundError,
    LinkForgeError,
    StaleLeaseError,
)
from linkforge.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# First matching class wins, so subclasses must precede their parents.
# Anything unlisted (graph, retrieval, LLM, queue storage) is a 500.
_STATUS_BY_ERROR: tuple[tuple[type[LinkForgeError], int], ...] = (
    (InvalidQueryError, 400),  # blank query, bad limit or embedding
    (JobNotFoundError, 404),
    (StaleLeaseError, 409),  # lease lost to another worker or a reclaim
    (DuplicateJobError, 409),  # retry of a payload that is already active
    (ConfigurationError, 503),  # feature switched off, e.g. question answering
)


def status_for_error(exc: LinkForgeError) -> int:
    """Map an application error to its HTTP status code."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        # A handler that raises leaves response as None; that is logged as
        # 500 here, and Starlette's own error handler sends the reply.

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Convert ``LinkForgeError`` subclasses into structured JSON errors.

    Client errors (bad query, unknown job, lease or duplicate conflicts)
    keep their message and are logged at info.  Server-side failures are
    logged at error with the provider name.  Exceptions that are not
    ``LinkForgeError`` pass through to FastAPI's default 500 handler.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except LinkForgeError as exc:
            status_code = status_for_error(exc)
            # 4xx are the caller's problem; only server-side failures are errors.
            log = _logger.error if status_code >= 500 else _logger.info
            log(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            # The client gets the error type and message only, never a traceback.
            body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
            return JSONResponse(status_code=status_code, content=body.model_dump())
