"""Global exception handlers for FastAPI.

Every error leaves the API as ``{"error": {"code", "message", "details"}}``.
Unexpected exceptions are logged with their traceback and rendered as a
generic 500; internals never reach the client.
"""

import logging
import traceback
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.exceptions import CrosspostException
from crosspost.db.crypto import TokenUnavailableError
from crosspost.platforms.base import PlatformError

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "AUTHENTICATION_FAILED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "UNPROCESSABLE_ENTITY",
    429: "RATE_LIMIT_EXCEEDED",
    500: "INTERNAL_ERROR",
}


def create_error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the standard error envelope."""
    error = {
        "code": code,
        "message": message,
    }
    if details:
        error["details"] = details
    return {"error": error}


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def crosspost_exception_handler(
    request: Request, exc: CrosspostException
) -> JSONResponse:
    """Handle CrosspostException and subclasses."""
    logger.warning(
        "API error: %s (code=%s, status=%d, path=%s, request_id=%s)",
        exc.message,
        exc.error_code,
        exc.status_code,
        request.url.path,
        _request_id(request),
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            code=exc.error_code,
            message=exc.message,
            details=exc.details or None,
        ),
    )


async def platform_exception_handler(request: Request, exc: PlatformError) -> JSONResponse:
    """Platform calls made inline by a request (reply, send, refresh).

    Rate limits keep their 429 so clients back off; everything else is a
    bad gateway carrying the normalized platform code.
    """
    status_code = 429 if exc.code == "RATE_LIMITED" else 502
    logger.warning(
        "Platform error: %s (code=%s, platform=%s, path=%s)",
        exc.message,
        exc.code,
        exc.platform.value if exc.platform else None,
        request.url.path,
    )

    details: dict[str, Any] = {"retryable": exc.retryable}
    if exc.platform:
        details["platform"] = exc.platform.value
    if exc.retry_after:
        details["retry_after"] = exc.retry_after

    return JSONResponse(
        status_code=status_code,
        content=create_error_response(code=exc.code, message=exc.message, details=details),
    )


async def token_unavailable_handler(
    request: Request, exc: TokenUnavailableError
) -> JSONResponse:
    """Stored credentials could not be decrypted; the account must reconnect."""
    logger.error(
        "Token unavailable (account_id=%s, path=%s)", exc.account_id, request.url.path
    )
    details = {"account_id": str(exc.account_id)} if exc.account_id else None
    return JSONResponse(
        status_code=409,
        content=create_error_response(
            code="TOKEN_UNAVAILABLE",
            message="Stored credentials for this account are unusable; reconnect it",
            details=details,
        ),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert FastAPI's request validation errors to the standard envelope."""
    errors = [
        {
            "field": ".".join(str(x) for x in error.get("loc", [])),
            "message": error.get("msg", "Invalid value"),
            "type": error.get("type", "value_error"),
        }
        for error in exc.errors()
    ]

    logger.info(
        "Validation error: %d field errors (path=%s)",
        len(errors),
        request.url.path,
    )

    return JSONResponse(
        status_code=400,
        content=create_error_response(
            code="VALIDATION_ERROR",
            message="Request validation failed",
            details={"errors": errors},
        ),
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Render HTTPException (raised by auth dependencies) in the standard envelope."""
    error_code = HTTP_ERROR_CODES.get(exc.status_code, "ERROR")
    message = str(exc.detail) if exc.detail else "An error occurred"

    log = logger.error if exc.status_code >= 500 else logger.info
    log("HTTP error %d: %s (path=%s)", exc.status_code, message, request.url.path)

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(code=error_code, message=message),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the traceback; return a generic 500."""
    logger.error(
        "Unhandled exception: %s (path=%s, request_id=%s)\n%s",
        str(exc),
        request.url.path,
        _request_id(request),
        traceback.format_exc(),
    )

    return JSONResponse(
        status_code=500,
        content=create_error_response(
            code="INTERNAL_ERROR",
            message="An unexpected error occurred",
        ),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register all error handlers with the FastAPI app."""
    app.add_exception_handler(CrosspostException, crosspost_exception_handler)
    app.add_exception_handler(PlatformError, platform_exception_handler)
    app.add_exception_handler(TokenUnavailableError, token_unavailable_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
