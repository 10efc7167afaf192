"""
Custom Exception Classes for CRM Search

This module defines the error taxonomy of the search engine so every
failure reaches the caller with a consistent status code and a
machine-readable error code.
"""

import enum
from typing import Any

from fastapi import status


class ErrorCode(str, enum.Enum):
    """Machine-readable error codes returned in every error response"""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    AUTH_FAILED = "AUTH_FAILED"
    AUTH_TENANT_REQUIRED = "AUTH_TENANT_REQUIRED"

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_SAVED_SEARCH_NOT_FOUND = "RESOURCE_SAVED_SEARCH_NOT_FOUND"

    VALIDATION_FAILED = "VALIDATION_FAILED"
    VALIDATION_INVALID_FILTER = "VALIDATION_INVALID_FILTER"

    STORAGE_FAILED = "STORAGE_FAILED"
    STORAGE_TIMEOUT = "STORAGE_TIMEOUT"


class CRMSearchError(Exception):
    """Base exception class for all search-related exceptions"""

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
# Authentication & Tenant Exceptions
# ============================================================================


class TenantRequiredError(CRMSearchError):
    """Raised when a request arrives without a resolved tenant"""

    def __init__(self, message: str = "Tenant could not be resolved for this request"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code=ErrorCode.AUTH_TENANT_REQUIRED,
        )


# ============================================================================
# Resource Not Found Exceptions
# ============================================================================


class ResourceNotFoundError(CRMSearchError):
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


class SavedSearchNotFoundError(ResourceNotFoundError):
    """Raised when a saved search does not exist or belongs to someone else"""

    def __init__(self, search_id: Any | None = None):
        super().__init__(
            resource_type="Saved search",
            resource_id=search_id,
            error_code=ErrorCode.RESOURCE_SAVED_SEARCH_NOT_FOUND,
        )


# ============================================================================
# Validation Exceptions
# ============================================================================


class ValidationError(CRMSearchError):
    """Raised when a filter combination is malformed or contradictory"""

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None):
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=ErrorCode.VALIDATION_INVALID_FILTER,
            details=error_details,
        )


# ============================================================================
# Storage & Collaborator Exceptions
# ============================================================================


class StorageError(CRMSearchError):
    """Raised when a read or write against the search stores fails"""

    def __init__(
        self,
        message: str = "A storage error occurred",
        entity_type: str | None = None,
        operation: str | None = None,
        timed_out: bool = False,
    ):
        details: dict[str, Any] = {}
        if entity_type:
            details["entity_type"] = entity_type
        if operation:
            details["operation"] = operation
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code=ErrorCode.STORAGE_TIMEOUT if timed_out else ErrorCode.STORAGE_FAILED,
            details=details,
        )
        self.entity_type = entity_type
        self.operation = operation
        self.timed_out = timed_out


class SemanticUnavailableError(CRMSearchError):
    """Raised by semantic collaborators; the planner always degrades to text search"""

    def __init__(self, message: str = "Semantic search is unavailable"):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code=ErrorCode.SERVICE_UNAVAILABLE,
        )


class UserRequiredError(CRMSearchError):
    """Raised when a per-user operation arrives without a user id"""

    def __init__(self, message: str = "User could not be resolved for this request"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code=ErrorCode.AUTH_FAILED,
        )
