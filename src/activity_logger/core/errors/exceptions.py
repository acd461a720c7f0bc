"""Domain exceptions for the application.

These exceptions represent business-logic errors and are automatically
converted to RFC 7807 Problem Details responses by the exception handlers.
"""

from typing import Any


class AppException(Exception):
    """Base exception for all application errors.

    All domain exceptions should inherit from this class.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for clients
        status_code: HTTP status code for the response
        details: Additional error details
    """

    message: str = "An unexpected error occurred"
    error_code: str = "internal_error"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)


class InvalidInputError(AppException):
    """Raised when caller-supplied ids or filters are malformed.

    Example:
        raise InvalidInputError("Log id must be a positive integer", details={"log_id": raw})
    """

    message = "Invalid input"
    error_code = "invalid_input"
    status_code = 422


class PermissionDeniedError(AppException):
    """Raised when a confirmation token or authorization check fails.

    Example:
        raise PermissionDeniedError("Confirmation token rejected")
    """

    message = "Permission denied"
    error_code = "permission_denied"
    status_code = 403


class WriteFailureError(AppException):
    """Raised when the store rejects or times out an insert, delete or DDL statement."""

    message = "The activity log could not be written"
    error_code = "write_failure"
    status_code = 503


class ReadFailureError(AppException):
    """Raised when the store rejects or times out a query."""

    message = "The activity log could not be read"
    error_code = "read_failure"
    status_code = 503


class ExportFailureError(WriteFailureError):
    """Raised when the CSV artifact cannot be written in full."""

    message = "The activity log export could not be generated"
    error_code = "export_failure"
    status_code = 500


class CacheUnavailableError(AppException):
    """Raised when a committed write cannot be followed by cache invalidation."""

    message = "Cache temporarily unavailable"
    error_code = "cache_unavailable"
    status_code = 503


class EventFormatError(AppException):
    """Raised inside the recorder when an event cannot be turned into a message.

    Never reaches callers of ``EventRecorder.record``.
    """

    message = "Event could not be formatted"
    error_code = "event_format_error"
