"""Error handling module with RFC 7807 Problem Details."""

from activity_logger.core.errors.exceptions import (
    AppException,
    CacheUnavailableError,
    EventFormatError,
    ExportFailureError,
    InvalidInputError,
    PermissionDeniedError,
    ReadFailureError,
    WriteFailureError,
)
from activity_logger.core.errors.handlers import (
    FieldError,
    ProblemDetail,
    register_exception_handlers,
)


__all__ = [
    # Exceptions
    "AppException",
    "CacheUnavailableError",
    "EventFormatError",
    "ExportFailureError",
    # Handlers
    "FieldError",
    "InvalidInputError",
    "PermissionDeniedError",
    "ProblemDetail",
    "ReadFailureError",
    "WriteFailureError",
    "register_exception_handlers",
]
