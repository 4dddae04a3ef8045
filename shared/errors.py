"""
Shared error handling for the output-cache service.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class OutputCacheException(Exception):
    """Base exception for output-cache errors."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
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


class InvalidArgumentError(OutputCacheException):
    """A required argument is missing or has an invalid value."""

    def __init__(self, argument: str, message: str = "Invalid argument", details: Optional[Dict[str, Any]] = None):
        self.argument = argument
        payload = {"argument": argument}
        payload.update(details or {})
        super().__init__("INVALID_ARGUMENT", f"{argument}: {message}", payload)


class ProfileNotFoundError(OutputCacheException):
    """A cache profile referenced by name is not registered."""

    status_code = 404

    def __init__(self, profile_name: str, details: Optional[Dict[str, Any]] = None):
        self.profile_name = profile_name
        payload = {"profile": profile_name}
        payload.update(details or {})
        super().__init__("PROFILE_NOT_FOUND", f"Cache profile '{profile_name}' is not registered", payload)
