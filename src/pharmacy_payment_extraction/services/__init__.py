"""Services for pharmacy payment extraction."""

from pharmacy_payment_extraction.services.format_detector import (
    SpreadsheetFormatDetector,
    UnsupportedFormatError,
)
from pharmacy_payment_extraction.services.workbook_loader import (
    WorkbookLoader,
    WorkbookLoadOptions,
)

__all__ = [
    "SpreadsheetFormatDetector",
    "UnsupportedFormatError",
    "WorkbookLoadOptions",
    "WorkbookLoader",
]
