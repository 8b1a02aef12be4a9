"""Centralized exception classes for pharmacy payment extraction.

Every error carries an error code, an HTTP status for the upload API and
structured details for logging.

Exception Hierarchy:
    PPEError (base)
    ├── FileError
    │   ├── PPEFileNotFoundError
    │   ├── FileTooLargeError
    │   ├── UnsupportedFormatError
    │   ├── EncodingError
    │   └── WorkbookReadError
    ├── ExtractionError
    └── ValidationError

A missing high value report is not an error: the extractor returns ``None``
for that case and none of these exceptions are raised.

Error Codes:
    All errors have a unique error code (e.g., "E1001") that can be used
    for programmatic error handling and documentation.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Enumeration of all error codes used in the application.

    Error codes are grouped by category:
    - E1xxx: File/upload errors
    - E2xxx: Request validation errors
    - E4xxx: Extraction errors
    - E9xxx: Internal/unexpected errors
    """

    # File errors (E1xxx)
    FILE_NOT_FOUND = "E1001"
    FILE_TOO_LARGE = "E1002"
    UNSUPPORTED_FORMAT = "E1003"
    FILE_READ_ERROR = "E1004"
    ENCODING_ERROR = "E1006"
    WORKBOOK_READ_ERROR = "E1007"

    # Validation errors (E2xxx)
    INVALID_REQUEST = "E2001"

    # Extraction errors (E4xxx)
    EXTRACTION_FAILED = "E4001"

    # Internal errors (E9xxx)
    INTERNAL_ERROR = "E9001"


class HTTPStatusMixin:
    """Mixin that provides HTTP status code for exceptions.

    Subclasses set the ``http_status`` class attribute.
    """

    http_status: int = 500

    def get_http_status(self) -> int:
        """Get the HTTP status code for this exception."""
        return self.http_status


class PPEError(Exception, HTTPStatusMixin):
    """Base exception for all pharmacy payment extraction errors.

    Attributes:
        message: Human-readable error message.
        error_code: Unique error code from ErrorCode enum.
        details: Optional dictionary with additional error details.
        http_status: HTTP status code for API responses (default 500).
    """

    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert the exception to a dictionary for API responses."""
        result: dict[str, Any] = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"


# =============================================================================
# File Errors (E1xxx)
# =============================================================================


class FileError(PPEError):
    """Base class for file-related errors."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.FILE_READ_ERROR,
        file_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if file_path:
            details["file_path"] = file_path
        super().__init__(message, error_code, details)
        self.file_path = file_path


class PPEFileNotFoundError(FileError):
    """Raised when a spreadsheet file does not exist.

    Note: Named PPEFileNotFoundError to avoid shadowing built-in FileNotFoundError.
    """

    http_status: int = 404

    def __init__(
        self,
        file_path: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        message = message or f"File not found: {file_path}"
        super().__init__(
            message=message,
            error_code=ErrorCode.FILE_NOT_FOUND,
            file_path=file_path,
            details=details,
        )


class FileTooLargeError(FileError):
    """Raised when an upload exceeds the maximum allowed size."""

    http_status: int = 413

    def __init__(
        self,
        file_size: int,
        max_size: int,
        file_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["file_size_bytes"] = file_size
        details["max_size_bytes"] = max_size
        message = (
            f"File size ({file_size} bytes) exceeds maximum "
            f"allowed size ({max_size} bytes)"
        )
        super().__init__(
            message=message,
            error_code=ErrorCode.FILE_TOO_LARGE,
            file_path=file_path,
            details=details,
        )
        self.file_size = file_size
        self.max_size = max_size


class UnsupportedFormatError(FileError):
    """Raised when an upload is not a supported spreadsheet format."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        extension: str | None = None,
        detected_mime: str | None = None,
        file_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if extension:
            details["extension"] = extension
        if detected_mime:
            details["detected_mime_type"] = detected_mime
        super().__init__(
            message=message,
            error_code=ErrorCode.UNSUPPORTED_FORMAT,
            file_path=file_path,
            details=details,
        )
        self.extension = extension
        self.detected_mime = detected_mime


class EncodingError(FileError):
    """Raised when CSV content cannot be decoded."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        encoding: str | None = None,
        file_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if encoding:
            details["encoding"] = encoding
        super().__init__(
            message=message,
            error_code=ErrorCode.ENCODING_ERROR,
            file_path=file_path,
            details=details,
        )
        self.encoding = encoding


class WorkbookReadError(FileError):
    """Raised when the spreadsheet library cannot read a workbook."""

    http_status: int = 422

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        sheet_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if sheet_name:
            details["sheet_name"] = sheet_name
        super().__init__(
            message=message,
            error_code=ErrorCode.WORKBOOK_READ_ERROR,
            file_path=file_path,
            details=details,
        )
        self.sheet_name = sheet_name


# =============================================================================
# Extraction Errors (E4xxx)
# =============================================================================


class ExtractionError(PPEError):
    """Raised when extraction fails outside the row-level skip logic."""

    http_status: int = 500

    def __init__(
        self,
        message: str,
        stage: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if stage:
            details["extraction_stage"] = stage
        super().__init__(message, ErrorCode.EXTRACTION_FAILED, details)
        self.stage = stage


# =============================================================================
# Validation Errors (E2xxx)
# =============================================================================


class ValidationError(PPEError):
    """General validation error for request input."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        field: str | None = None,
        errors: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        if errors:
            details["validation_errors"] = errors
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_REQUEST,
            details=details,
        )
