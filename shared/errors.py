"""
Shared error handling for the storefront services.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel
from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class StoreException(Exception):
    """Base exception for storefront services."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 status_code: Optional[int] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        # Get trace ID from current span
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(StoreException):
    """Malformed input supplied by the caller."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class InvalidQuantityError(ValidationError):
    """Quantity is missing, non-numeric or out of range."""

    def __init__(self, message: str = "Please provide a valid quantity > 0", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = "INVALID_QUANTITY"


class AuthenticationError(StoreException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class ForbiddenError(StoreException):
    """Authenticated, but not allowed to perform this mutation."""

    status_code = 403

    def __init__(self, message: str = "Not authorized", details: Optional[Dict[str, Any]] = None):
        super().__init__("FORBIDDEN", message, details)


class NotFoundError(StoreException):
    """Referenced entity does not exist."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class InsufficientStockError(StoreException):
    """Purchase exceeds the quantity currently in stock."""

    status_code = 400

    def __init__(self, available: int, requested: int):
        super().__init__(
            "INSUFFICIENT_STOCK",
            f"Insufficient stock. Only {available} item(s) available.",
            {"available": available, "requested": requested}
        )
        self.available = available
        self.requested = requested


class ServiceUnavailableError(StoreException):
    """The persistent store is not connected yet."""

    status_code = 503

    def __init__(self, message: str = "Service temporarily unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_UNAVAILABLE", message, details)


class InternalError(StoreException):
    """Unexpected storage or serialization failure."""

    status_code = 500

    def __init__(self, message: str = "Internal server error", details: Optional[Dict[str, Any]] = None):
        super().__init__("INTERNAL_ERROR", message, details)
