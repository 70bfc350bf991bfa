"""
Custom Exception Classes for the engagement service

This module defines custom exceptions for consistent error handling.
Every exception carries a machine-readable ``error_code`` that the
exception handlers place in the ``{"success": false, "error": {...}}``
response envelope.
"""

import enum
from typing import Any

from fastapi import status


class ErrorCode(str, enum.Enum):
    """Machine-readable error codes returned in the error envelope."""

    # Resources
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    CONTENT_NOT_FOUND = "CONTENT_NOT_FOUND"
    CATEGORY_NOT_FOUND = "CATEGORY_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    NO_CONTENT_FOUND = "NO_CONTENT_FOUND"

    # Auth
    AUTH_FAILED = "AUTH_FAILED"
    AUTH_PERMISSION_DENIED = "UNAUTHORIZED"

    # Validation
    VALIDATION_FAILED = "VALIDATION_ERROR"
    DUPLICATE_RESOURCE = "DUPLICATE_RESOURCE"

    # Infrastructure
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class EngagementError(Exception):
    """Base exception class for all service exceptions"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# ============================================================================
# Authentication & Authorization Exceptions
# ============================================================================


class AuthenticationError(EngagementError):
    """Raised when a request needs a verified principal and has none"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message=message, status_code=status.HTTP_401_UNAUTHORIZED, error_code=ErrorCode.AUTH_FAILED)


class AuthorizationError(EngagementError):
    """Raised when user lacks permission for an action"""

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code=ErrorCode.AUTH_PERMISSION_DENIED,
        )


# ============================================================================
# Resource Not Found Exceptions
# ============================================================================


class ResourceNotFoundError(EngagementError):
    """Base class for resource not found errors"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Any | None = None,
        error_code: ErrorCode = ErrorCode.RESOURCE_NOT_FOUND,
    ):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message = f"{resource_type} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=error_code,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class UserNotFoundError(ResourceNotFoundError):
    """Raised when a user is not found"""

    def __init__(self, user_id: Any | None = None):
        super().__init__(resource_type="User", resource_id=user_id, error_code=ErrorCode.USER_NOT_FOUND)


class ContentNotFoundError(ResourceNotFoundError):
    """Raised when content is not found"""

    def __init__(self, content_id: Any | None = None):
        super().__init__(resource_type="Content", resource_id=content_id, error_code=ErrorCode.CONTENT_NOT_FOUND)


class CategoryNotFoundError(ResourceNotFoundError):
    """Raised when a category is not found"""

    def __init__(self, category_id: Any | None = None):
        super().__init__(resource_type="Category", resource_id=category_id, error_code=ErrorCode.CATEGORY_NOT_FOUND)


class NoContentFoundError(EngagementError):
    """Raised when a discovery query has nothing to select from"""

    def __init__(self, message: str = "No content found", category_id: Any | None = None):
        details = {"category_id": category_id} if category_id is not None else {}
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=ErrorCode.NO_CONTENT_FOUND,
            details=details,
        )


# ============================================================================
# Store & Service Exceptions
# ============================================================================


class StoreUnavailableError(EngagementError):
    """Raised when the relational store cannot be reached; the operation is safe to retry"""

    def __init__(self, message: str = "The data store is temporarily unavailable", operation: str | None = None):
        details = {"operation": operation} if operation else {}
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code=ErrorCode.STORE_UNAVAILABLE,
            details=details,
        )
