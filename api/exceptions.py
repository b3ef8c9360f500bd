"""Standard exception classes for the API.

All custom exceptions inherit from CrosspostException and include:
- message: Human-readable error message
- error_code: Machine-readable error code (e.g., "NOT_FOUND")
- details: Optional dictionary with additional context

Services raise these; api.error_handlers renders them as JSON.
"""

from typing import Any, Optional


class CrosspostException(Exception):
    """Base exception for all API errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for client handling
        details: Optional dictionary with additional error context
        status_code: HTTP status code (set by subclasses)
    """

    status_code: int = 500
    default_error_code: str = "INTERNAL_ERROR"
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        result = {
            "code": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class NotFoundError(CrosspostException):
    """Resource not found (HTTP 404).

    Also raised for resources that exist in another workspace.
    """

    status_code = 404
    default_error_code = "NOT_FOUND"
    default_message = "Resource not found"


class ValidationError(CrosspostException):
    """Request validation failed (HTTP 400)."""

    status_code = 400
    default_error_code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class AuthenticationError(CrosspostException):
    """Authentication failed (HTTP 401)."""

    status_code = 401
    default_error_code = "AUTHENTICATION_FAILED"
    default_message = "Authentication required"


class AuthorizationError(CrosspostException):
    """Authorization failed (HTTP 403)."""

    status_code = 403
    default_error_code = "FORBIDDEN"
    default_message = "Permission denied"


class ConflictError(CrosspostException):
    """Resource conflict (HTTP 409).

    Use when the request conflicts with current state
    (e.g., duplicate account connection, concurrent transition).
    """

    status_code = 409
    default_error_code = "CONFLICT"
    default_message = "Resource conflict"


class InvalidStateError(ConflictError):
    """Operation not allowed from the resource's current status (HTTP 409)."""

    default_error_code = "INVALID_STATE"
    default_message = "Operation not allowed in the current state"


class WebhookSignatureError(AuthenticationError):
    """Webhook payload signature missing or wrong (HTTP 401)."""

    default_error_code = "INVALID_SIGNATURE"
    default_message = "Webhook signature verification failed"


class ServiceWindowClosedError(CrosspostException):
    """Free-form WhatsApp message outside the 24h service window (HTTP 422)."""

    status_code = 422
    default_error_code = "SERVICE_WINDOW_CLOSED"
    default_message = (
        "The 24-hour customer service window is closed; send an approved template instead"
    )
