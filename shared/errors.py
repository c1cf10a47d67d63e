"""
Shared error handling for the search rules service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class ServiceException(Exception):
    """Base exception for search services."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            trace_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class RequestValidationError(ServiceException):
    """Invalid user input; details hold one entry per failing field."""

    status_code = 400

    def __init__(self, message: str = "Request validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ConfigurationError(ServiceException):
    """Programming mistake in rule declarations (bad type, callback, regex...)."""

    def __init__(self, message: str = "Invalid rule configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class ServiceError(ServiceException):
    """Service-related errors."""

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_ERROR", message, details)


class FieldValidationException(Exception):
    """
    Raised while validating a single field.

    The validator catches it and records it against the field path. Codes
    starting with ``internal.`` denote configuration errors.
    """

    def __init__(self, code: str, params: Optional[Dict[str, Any]] = None):
        self.code = code
        self.params = params or {}
        super().__init__(code)

    @property
    def is_internal(self) -> bool:
        return self.code.startswith("internal.")
