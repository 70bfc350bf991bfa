"""
Global Exception Handlers for the engagement service

This module provides centralized exception handling for consistent
error responses across the application.

Error Response Format:
{
    "success": false,
    "error": {
        "message": "Content with id '123' not found",
        "code": "CONTENT_NOT_FOUND",
        "details": {"resource_type": "Content", "resource_id": 123}
    }
}

The `code` field is machine-readable and stable across releases.
"""

import logging
from typing import Any, Union

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import DBAPIError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.exceptions import EngagementError, ErrorCode
from app.utils.store import is_store_unavailable

logger = logging.getLogger(__name__)


def create_error_response(
    status_code: int,
    message: str,
    error_code: str | ErrorCode | None = None,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """
    Create a standardized error response.

    Args:
        status_code: HTTP status code
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional error details
        headers: Extra response headers

    Returns:
        JSONResponse with the failure envelope
    """
    code = error_code or get_http_error_code(status_code)
    error: dict[str, Any] = {
        "message": message,
        "code": code.value if isinstance(code, ErrorCode) else code,
    }

    if details:
        error["details"] = details

    return JSONResponse(status_code=status_code, content={"success": False, "error": error}, headers=headers)


def get_http_error_code(status_code: int) -> str:
    """Map HTTP status codes to error codes for HTTPException."""
    error_code_map = {
        400: ErrorCode.VALIDATION_FAILED.value,
        401: ErrorCode.AUTH_FAILED.value,
        403: ErrorCode.AUTH_PERMISSION_DENIED.value,
        404: ErrorCode.RESOURCE_NOT_FOUND.value,
        405: ErrorCode.VALIDATION_FAILED.value,
        409: ErrorCode.DUPLICATE_RESOURCE.value,
        422: ErrorCode.VALIDATION_FAILED.value,
        429: ErrorCode.RATE_LIMIT_EXCEEDED.value,
        500: ErrorCode.INTERNAL_ERROR.value,
        503: ErrorCode.STORE_UNAVAILABLE.value,
    }
    return error_code_map.get(status_code, ErrorCode.UNKNOWN_ERROR.value)


async def engagement_exception_handler(request: Request, exc: EngagementError) -> JSONResponse:
    """
    Handle the service's own exceptions.

    Client errors are logged at INFO; server-side failures at ERROR.
    """
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        f"{type(exc).__name__}: {exc.message}",
        extra={
            "status_code": exc.status_code,
            "error_code": exc.error_code.value,
            "path": request.url.path,
        },
    )

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    if exc.error_code == ErrorCode.STORE_UNAVAILABLE:
        headers = {"Retry-After": "5"}

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details if exc.details else None,
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle standard HTTP exceptions (unknown routes, wrong methods, ...)."""
    logger.warning(
        f"HTTPException: {exc.detail}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
        },
    )

    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, PydanticValidationError]
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        errors.append({"field": field, "message": error["msg"], "type": error["type"]})

    logger.info(f"Validation error on {request.url.path}", extra={"errors": errors})

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code=ErrorCode.VALIDATION_FAILED,
        details={"validation_errors": errors},
    )


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Handle slowapi rate limit rejections."""
    logger.warning(f"Rate limit exceeded on {request.url.path}: {exc.detail}")

    return create_error_response(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        message=f"Rate limit exceeded: {exc.detail}",
        error_code=ErrorCode.RATE_LIMIT_EXCEEDED,
        headers={"Retry-After": "60"},
    )


async def database_exception_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    """Connection-level store failures surface as a retryable 503."""
    if not is_store_unavailable(exc):
        return await unhandled_exception_handler(request, exc)

    logger.error(f"Store unavailable on {request.url.path}: {exc}")
    return create_error_response(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        message="The data store is temporarily unavailable",
        error_code=ErrorCode.STORE_UNAVAILABLE,
        headers={"Retry-After": "5"},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Internal details are never exposed to the client.
    """
    logger.error(
        f"Unhandled exception: {str(exc)}",
        exc_info=True,
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code=ErrorCode.INTERNAL_ERROR,
    )


def register_exception_handlers(app) -> None:
    """
    Register all exception handlers with the FastAPI app.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(EngagementError, engagement_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(DBAPIError, database_exception_handler)

    # Catch-all for unexpected exceptions
    app.add_exception_handler(Exception, unhandled_exception_handler)

    logger.info("Exception handlers registered successfully")
