"""Spreadsheet format detection for uploads.

Formats are recognised by extension and confirmed against the MIME type
libmagic sniffs from the file content, so a renamed PDF, Word document or
image is rejected before any spreadsheet library sees it.
"""

from pathlib import Path

import magic

from pharmacy_payment_extraction.models import SpreadsheetFormat
from pharmacy_payment_extraction.utils.exceptions import UnsupportedFormatError
from pharmacy_payment_extraction.utils.logging import get_logger

logger = get_logger(__name__)

__all__ = [
    "CONTENT_MIME_TYPES",
    "EXTENSION_TO_FORMAT",
    "FORMAT_TO_MIME",
    "SpreadsheetFormatDetector",
    "UnsupportedFormatError",
]

EXTENSION_TO_FORMAT: dict[str, SpreadsheetFormat] = {
    ".xlsx": SpreadsheetFormat.XLSX,
    ".xlsm": SpreadsheetFormat.XLSM,
    ".xls": SpreadsheetFormat.XLS,
    ".csv": SpreadsheetFormat.CSV,
}

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLSM_MIME = "application/vnd.ms-excel.sheet.macroenabled.12"
XLS_MIME = "application/vnd.ms-excel"

FORMAT_TO_MIME: dict[SpreadsheetFormat, str] = {
    SpreadsheetFormat.XLSX: XLSX_MIME,
    SpreadsheetFormat.XLSM: "application/vnd.ms-excel.sheet.macroEnabled.12",
    SpreadsheetFormat.XLS: XLS_MIME,
    SpreadsheetFormat.CSV: "text/csv",
}

# Sniffed types accepted for each format. libmagic only names the OOXML
# flavour when [Content_Types].xml is the first archive member, which
# openpyxl does not guarantee, so a plain ZIP is accepted too.
CONTENT_MIME_TYPES: dict[SpreadsheetFormat, frozenset[str]] = {
    SpreadsheetFormat.XLSX: frozenset({XLSX_MIME, "application/zip"}),
    SpreadsheetFormat.XLSM: frozenset({XLSM_MIME, XLSX_MIME, "application/zip"}),
    SpreadsheetFormat.XLS: frozenset(
        {XLS_MIME, "application/x-ole-storage", "application/cdfv2"}
    ),
}


class SpreadsheetFormatDetector:
    """Detect and validate the format of an uploaded spreadsheet."""

    def __init__(self) -> None:
        """Initialize the detector with a magic instance."""
        self._magic = magic.Magic(mime=True)

    def detect(self, content: bytes, filename: str) -> SpreadsheetFormat:
        """Return the spreadsheet format of an upload.

        Args:
            content: Raw file bytes.
            filename: Original filename, used for its extension.

        Returns:
            The detected format.

        Raises:
            UnsupportedFormatError: If the extension is not a supported
                spreadsheet type or the content does not match it.
        """
        extension = Path(filename).suffix.lower()
        spreadsheet_format = EXTENSION_TO_FORMAT.get(extension)
        if spreadsheet_format is None:
            supported = ", ".join(sorted(EXTENSION_TO_FORMAT))
            raise UnsupportedFormatError(
                f"Unsupported file type '{extension or filename}'. "
                f"Supported types: {supported}",
                extension=extension or None,
                file_path=filename,
            )

        detected_mime = self.sniff_mime(content)
        if detected_mime is not None and not self._content_matches(
            spreadsheet_format, detected_mime
        ):
            logger.warning(
                "File content does not match its extension",
                filename=filename,
                extension=extension,
                detected_mime=detected_mime,
            )
            if spreadsheet_format is SpreadsheetFormat.CSV:
                message = f"File '{filename}' does not contain CSV text"
            else:
                message = f"File '{filename}' is not a valid {extension} workbook"
            raise UnsupportedFormatError(
                message,
                extension=extension,
                detected_mime=detected_mime,
                file_path=filename,
            )

        logger.debug(
            "Detected spreadsheet format",
            filename=filename,
            format=spreadsheet_format.value,
            detected_mime=detected_mime,
        )
        return spreadsheet_format

    def sniff_mime(self, content: bytes) -> str | None:
        """Detect the MIME type of file content using magic bytes.

        Returns:
            The lower-cased MIME type, or None for empty content or when
            libmagic cannot read the buffer.
        """
        if not content:
            return None

        try:
            detected: str = self._magic.from_buffer(content)
        except magic.MagicException as e:
            logger.warning(
                "Magic detection failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        return detected.lower()

    @staticmethod
    def _content_matches(
        spreadsheet_format: SpreadsheetFormat, detected_mime: str
    ) -> bool:
        if spreadsheet_format is SpreadsheetFormat.CSV:
            return detected_mime.startswith("text/") or detected_mime in {
                "application/csv",
                "application/x-empty",
            }
        return detected_mime in CONTENT_MIME_TYPES[spreadsheet_format]

    @staticmethod
    def get_mime_type(spreadsheet_format: SpreadsheetFormat) -> str:
        return FORMAT_TO_MIME[spreadsheet_format]
