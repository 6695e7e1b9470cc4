"""
SOD Flow - Custom Exception Hierarchy

Provides structured, typed exceptions with error codes for consistent
error handling across the application.

Usage:
    from sodflow.exceptions import NotFoundError, FetchError

    raise NotFoundError("Line item", sod_id)
    raise FetchError("Could not load order details", order_id=order.id)
"""
from typing import Any, Dict, Optional


class SodFlowException(Exception):
    """
    Base exception for all SOD Flow errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "NOT_FOUND", "FETCH_ERROR")
        status_code: HTTP status code to return
        details: Additional context for debugging
    """

    error_code: str = "SODFLOW_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# ===================
# 400 Bad Request Errors
# ===================


class ValidationError(SodFlowException):
    """Raised when input validation fails."""

    error_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details=details)


class BootstrapError(SodFlowException):
    """Raised when a session cannot be initialized (missing customer, provider failure)."""

    error_code = "BOOTSTRAP_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Session initialization failed",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


# ===================
# 404 Not Found Errors
# ===================


class NotFoundError(SodFlowException):
    """Raised when a resource is not found."""

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Any = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["resource"] = resource
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(message, details=details)


# ===================
# 502 Upstream Errors
# ===================


class IntegrationError(SodFlowException):
    """Raised when an external service integration fails."""

    error_code = "INTEGRATION_ERROR"
    status_code = 502

    def __init__(
        self,
        service: str,
        message: str = "External service error",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["service"] = service
        super().__init__(f"{service}: {message}", details=details)


class DataverseError(IntegrationError):
    """Raised when a Dataverse Web API call fails."""

    error_code = "DATAVERSE_ERROR"

    def __init__(
        self,
        message: str = "Dataverse API error",
        *,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if status is not None:
            details["http_status"] = status
        super().__init__("Dataverse", message, details=details)


class FetchError(SodFlowException):
    """Raised when loading orders or order details for the user fails."""

    error_code = "FETCH_ERROR"
    status_code = 502

    def __init__(
        self,
        message: str = "Could not load order details",
        *,
        order_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if order_id:
            details["order_id"] = order_id
        super().__init__(message, details=details)
