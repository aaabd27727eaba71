"""
Exception handlers for the FastAPI application.

Every error leaves the API as
{"statusCode", "message", "error", "path", "timestamp"}.
"""

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def _reason(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def error_body(request: Request, status_code: int, message: Any) -> dict[str, Any]:
    """Uniform error payload."""
    return {
        "statusCode": status_code,
        "message": message,
        "error": _reason(status_code),
        "path": request.url.path,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle HTTPException raised by routes, guards and services."""
    assert isinstance(exc, StarletteHTTPException)
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, exc.detail),
        headers=getattr(exc, "headers", None),
    )


def _format_validation_error(error: dict[str, Any]) -> str:
    # Drop the "body" / "query" prefix FastAPI puts on locations
    location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(location)
    if error.get("type") == "extra_forbidden":
        return f"property {field} should not exist"
    return f"{field}: {error.get('msg')}" if field else str(error.get("msg"))


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Request validation errors are 400 with one message per failing field."""
    assert isinstance(exc, RequestValidationError)
    messages = [_format_validation_error(error) for error in exc.errors()]

    logger.warning(f"Validation error on {request.url.path}: {messages}")

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(request, status.HTTP_400_BAD_REQUEST, messages),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all unhandled exceptions.

    Logs the full exception with traceback and returns a safe error response.
    """
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc!s}",
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
