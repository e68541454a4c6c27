"""
Custom exception hierarchy for the PM Tracker service.
Provides structured error handling with proper HTTP status codes.
"""

from typing import Any, Optional


class PMTrackerError(Exception):
    """Base exception for all PM Tracker errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PMTrackerError):
    """Error in application configuration."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details=details,
            status_code=500,
        )


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(PMTrackerError):
    """Request validation failed."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details=details,
            status_code=400,
        )


class InvalidRequestError(ValidationError):
    """Invalid request parameters."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message=message, details=details)
        self.code = "INVALID_REQUEST"


# =============================================================================
# Not Found Errors (404)
# =============================================================================


class NotFoundError(PMTrackerError):
    """Requested resource not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        msg = message or f"{resource_type} not found"
        if resource_id:
            msg = f"{resource_type} with ID '{resource_id}' not found"

        super().__init__(
            message=msg,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
            status_code=404,
        )


class ProjectNotFoundError(NotFoundError):
    """Project not found."""

    def __init__(self, project_id: str) -> None:
        super().__init__(resource_type="Project", resource_id=project_id)
        self.code = "PROJECT_NOT_FOUND"


class EpicNotFoundError(NotFoundError):
    """Epic not found."""

    def __init__(self, epic_id: str) -> None:
        super().__init__(resource_type="Epic", resource_id=epic_id)
        self.code = "EPIC_NOT_FOUND"


class FeatureNotFoundError(NotFoundError):
    """Feature not found."""

    def __init__(self, feature_id: str) -> None:
        super().__init__(resource_type="Feature", resource_id=feature_id)
        self.code = "FEATURE_NOT_FOUND"


# =============================================================================
# External Service Errors (502)
# =============================================================================


class ExternalServiceError(PMTrackerError):
    """Error communicating with external service."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=f"{service_name} error: {message}",
            code="EXTERNAL_SERVICE_ERROR",
            details={"service": service_name, **(details or {})},
            status_code=502,
        )


class LLMError(ExternalServiceError):
    """Error communicating with the LLM provider."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(service_name="LLM", message=message, details=details)
        self.code = "LLM_ERROR"


# =============================================================================
# Business Logic Errors (422)
# =============================================================================


class BusinessLogicError(PMTrackerError):
    """Business logic validation failed."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="BUSINESS_LOGIC_ERROR",
            details=details,
            status_code=422,
        )


class MalformedResponseError(BusinessLogicError):
    """A collaborator answered, but not in the expected shape."""

    def __init__(
        self,
        collaborator: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=f"Malformed {collaborator} response: {message}",
            details={"collaborator": collaborator, **(details or {})},
        )
        self.code = "MALFORMED_RESPONSE"


# =============================================================================
# Timeout Errors (504)
# =============================================================================


class TimeoutError(PMTrackerError):
    """Operation timed out."""

    def __init__(self, operation: str, timeout_seconds: int) -> None:
        super().__init__(
            message=f"Operation '{operation}' timed out after {timeout_seconds} seconds",
            code="TIMEOUT",
            details={"operation": operation, "timeout_seconds": timeout_seconds},
            status_code=504,
        )


# Collaborator failures a best-effort step may recover from with a default
SOFT_FAILURES = (ExternalServiceError, TimeoutError, MalformedResponseError, ConfigurationError)
