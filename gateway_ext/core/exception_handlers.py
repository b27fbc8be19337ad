"""Global exception handlers for consistent error responses.

Anything that escapes a route or middleware is turned into a JSON envelope:

    {"error": {"code": ..., "message": ..., "request_id": ...}}

- StoreAppError -> 503 (shared store unavailable)
- ConfigurationAppError -> 500
- other AppError -> 400
- unexpected Exception -> generic 500, message never includes internals
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from gateway_ext.core.errors import AppError, ConfigurationAppError, StoreAppError
from gateway_ext.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, StoreAppError):
        return 503
    if isinstance(exc, ConfigurationAppError):
        return 500
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error with its code and optional details.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the mapped status code.
    """
    status_code = _status_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_msg": exc.message,
            "status_code": status_code,
            "request_path": request.url.path,
        },
    )

    error_content: dict = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(status_code=status_code, content={"error": error_content})


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback for unexpected errors: log the detail, return a generic 500."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the handlers on ``app``; safe to call more than once."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
