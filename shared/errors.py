"""
Shared error handling for the statistics API.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from .logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class StatsApiException(Exception):
    """Base exception for statistics API services."""

    status_code = 500

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(StatsApiException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(StatsApiException):
    """Requested resource does not exist."""

    status_code = 404

    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class DataSourceError(StatsApiException):
    """The relational store failed to execute a query."""

    def __init__(self, message: str = "Data source error", details: Optional[Dict[str, Any]] = None):
        super().__init__("DATA_SOURCE_ERROR", message, details)


class CacheInitializationError(StatsApiException):
    """The cache preload orchestration failed as a whole."""

    def __init__(self, message: str = "Cache initialization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_INITIALIZATION_ERROR", message, details)
