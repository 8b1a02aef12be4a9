"""Utilities package for pharmacy payment extraction.

This package provides:
- Centralized exception classes (exceptions.py)
- Structured logging utilities (logging.py)
"""

from pharmacy_payment_extraction.utils.exceptions import (
    EncodingError,
    ErrorCode,
    ExtractionError,
    FileError,
    FileTooLargeError,
    HTTPStatusMixin,
    PPEError,
    PPEFileNotFoundError,
    UnsupportedFormatError,
    ValidationError,
    WorkbookReadError,
)
from pharmacy_payment_extraction.utils.logging import (
    LogContext,
    StructuredLogger,
    get_logger,
    get_request_id,
    set_request_id,
)

__all__ = [
    # Exceptions
    "EncodingError",
    "ErrorCode",
    "ExtractionError",
    "FileError",
    "FileTooLargeError",
    "HTTPStatusMixin",
    "PPEError",
    "PPEFileNotFoundError",
    "UnsupportedFormatError",
    "ValidationError",
    "WorkbookReadError",
    # Logging
    "LogContext",
    "StructuredLogger",
    "get_logger",
    "get_request_id",
    "set_request_id",
]
