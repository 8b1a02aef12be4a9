"""Spreadsheet loading for payment schedule uploads.

Turns ``.xlsx``/``.xlsm`` workbooks (openpyxl), legacy ``.xls`` workbooks (xlrd)
and ``.csv`` exports (pandas) into the plain sheet-name -> rows mapping the
extractors consume.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from zipfile import BadZipFile

import chardet
import pandas as pd
import xlrd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet
from xlrd import XLRDError
from xlrd.compdoc import CompDocError
from xlrd.xldate import XLDateError, xldate_as_datetime

from pharmacy_payment_extraction.models import SpreadsheetFormat
from pharmacy_payment_extraction.services.format_detector import (
    EXTENSION_TO_FORMAT,
    SpreadsheetFormatDetector,
)
from pharmacy_payment_extraction.utils.exceptions import (
    EncodingError,
    PPEFileNotFoundError,
    WorkbookReadError,
)
from pharmacy_payment_extraction.utils.logging import get_logger
from pharmacy_payment_extraction.workbook import LoadedWorkbook

logger = get_logger(__name__)

_WORKBOOK_READ_ERRORS = (
    BadZipFile,
    InvalidFileException,
    KeyError,
    OSError,
    ValueError,
)

_XLS_READ_ERRORS = (
    CompDocError,
    XLRDError,
    OSError,
    ValueError,
)


@dataclass
class WorkbookLoadOptions:
    """Options controlling how much of a workbook is read."""

    sheet_name: str | None = None
    max_rows: int | None = None
    max_columns: int | None = None


class WorkbookLoader:
    """Load spreadsheets into sheet-name -> rows mappings."""

    # Tried in order when chardet is unsure
    FALLBACK_ENCODINGS = ["utf-8", "cp1252"]
    MIN_ENCODING_CONFIDENCE = 0.5

    def __init__(self, detector: SpreadsheetFormatDetector | None = None) -> None:
        self._detector = detector or SpreadsheetFormatDetector()

    def load_path(
        self, file_path: Path, options: WorkbookLoadOptions | None = None
    ) -> LoadedWorkbook:
        """Load a spreadsheet from disk."""
        if not file_path.exists():
            raise PPEFileNotFoundError(str(file_path))
        return self.load_bytes(file_path.read_bytes(), file_path.name, options)

    def load_bytes(
        self,
        content: bytes,
        filename: str,
        options: WorkbookLoadOptions | None = None,
    ) -> LoadedWorkbook:
        """Load a spreadsheet from raw bytes.

        Args:
            content: File content.
            filename: Original filename; decides the format and, for CSV,
                the sheet name.
            options: Optional sheet selection and size limits.

        Raises:
            UnsupportedFormatError: If the file is not a supported spreadsheet.
            WorkbookReadError: If the spreadsheet cannot be parsed.
            EncodingError: If CSV content cannot be decoded.
        """
        opts = options or WorkbookLoadOptions()
        spreadsheet_format = self._detector.detect(content, filename)

        if spreadsheet_format is SpreadsheetFormat.CSV:
            sheets = self._read_csv(content, filename, opts)
        elif spreadsheet_format is SpreadsheetFormat.XLS:
            sheets = self._read_xls(content, filename, opts)
        else:
            sheets = self._read_excel(content, filename, opts)

        logger.info(
            "Workbook loaded",
            filename=filename,
            format=spreadsheet_format.value,
            sheets=len(sheets),
        )
        return LoadedWorkbook(
            sheets=sheets,
            source_format=spreadsheet_format.value,
            metadata={
                "filename": filename,
                "file_size": len(content),
                "mime_type": self._detector.get_mime_type(spreadsheet_format),
            },
        )

    def get_sheet_names(self, file_path: Path) -> list[str]:
        """List the worksheet names of a workbook without reading cells."""
        if not file_path.exists():
            raise PPEFileNotFoundError(str(file_path))
        spreadsheet_format = EXTENSION_TO_FORMAT.get(file_path.suffix.lower())
        if spreadsheet_format is SpreadsheetFormat.CSV:
            return [file_path.stem]
        if spreadsheet_format is SpreadsheetFormat.XLS:
            try:
                book = xlrd.open_workbook(str(file_path), on_demand=True)
            except _XLS_READ_ERRORS as e:
                raise WorkbookReadError(
                    f"Could not read workbook: {e}", file_path=str(file_path)
                ) from e
            try:
                return book.sheet_names()
            finally:
                book.release_resources()
        try:
            wb = load_workbook(filename=file_path, read_only=True)
        except _WORKBOOK_READ_ERRORS as e:
            raise WorkbookReadError(
                f"Could not read workbook: {e}", file_path=str(file_path)
            ) from e
        try:
            return list(wb.sheetnames)
        finally:
            wb.close()

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _read_excel(
        self, content: bytes, filename: str, opts: WorkbookLoadOptions
    ) -> dict[str, list[list[Any]]]:
        try:
            # data_only: cached formula results rather than formula text
            workbook = load_workbook(filename=io.BytesIO(content), data_only=True)
        except _WORKBOOK_READ_ERRORS as e:
            raise WorkbookReadError(
                f"Could not read workbook: {e}", file_path=filename
            ) from e

        names = [ws.title for ws in workbook.worksheets]
        if opts.sheet_name is not None and opts.sheet_name not in names:
            raise WorkbookReadError(
                f"Sheet '{opts.sheet_name}' not found in workbook",
                file_path=filename,
                sheet_name=opts.sheet_name,
            )

        sheets: dict[str, list[list[Any]]] = {}
        for sheet in workbook.worksheets:
            if opts.sheet_name is not None and sheet.title != opts.sheet_name:
                continue
            sheets[sheet.title] = self._read_sheet(sheet, opts)
        workbook.close()
        return sheets

    @staticmethod
    def _read_sheet(sheet: Worksheet, opts: WorkbookLoadOptions) -> list[list[Any]]:
        rows: list[list[Any]] = []
        for values in sheet.iter_rows(
            max_row=opts.max_rows, max_col=opts.max_columns, values_only=True
        ):
            rows.append(_trim_trailing_empty(list(values)))
        return rows

    def _read_xls(
        self, content: bytes, filename: str, opts: WorkbookLoadOptions
    ) -> dict[str, list[list[Any]]]:
        try:
            book = xlrd.open_workbook(file_contents=content, on_demand=True)
        except _XLS_READ_ERRORS as e:
            raise WorkbookReadError(
                f"Could not read workbook: {e}", file_path=filename
            ) from e

        try:
            names = book.sheet_names()
            if opts.sheet_name is not None and opts.sheet_name not in names:
                raise WorkbookReadError(
                    f"Sheet '{opts.sheet_name}' not found in workbook",
                    file_path=filename,
                    sheet_name=opts.sheet_name,
                )

            sheets: dict[str, list[list[Any]]] = {}
            for name in names:
                if opts.sheet_name is not None and name != opts.sheet_name:
                    continue
                sheet = book.sheet_by_name(name)
                sheets[name] = self._read_xls_sheet(sheet, book.datemode, opts)
        except _XLS_READ_ERRORS as e:
            raise WorkbookReadError(
                f"Could not read workbook: {e}", file_path=filename
            ) from e
        finally:
            book.release_resources()
        return sheets

    @staticmethod
    def _read_xls_sheet(
        sheet: Any, datemode: int, opts: WorkbookLoadOptions
    ) -> list[list[Any]]:
        row_count = sheet.nrows
        if opts.max_rows is not None:
            row_count = min(row_count, opts.max_rows)
        rows: list[list[Any]] = []
        for index in range(row_count):
            cells = sheet.row(index)[: opts.max_columns]
            rows.append(_trim_trailing_empty([_xls_value(c, datemode) for c in cells]))
        return rows

    def _read_csv(
        self, content: bytes, filename: str, opts: WorkbookLoadOptions
    ) -> dict[str, list[list[Any]]]:
        sheet_name = Path(filename).stem or "Sheet1"
        if opts.sheet_name is not None and opts.sheet_name != sheet_name:
            raise WorkbookReadError(
                f"Sheet '{opts.sheet_name}' not found in workbook",
                file_path=filename,
                sheet_name=opts.sheet_name,
            )

        text = self._decode(content, filename)
        if not text.strip():
            return {sheet_name: []}

        delimiter = self._detect_delimiter(text)
        # Exports carry title rows narrower than the table, so size the frame
        # to the widest row rather than the first.
        width = max(
            (len(row) for row in csv.reader(io.StringIO(text), delimiter=delimiter)),
            default=0,
        )
        try:
            df = pd.read_csv(
                io.StringIO(text),
                delimiter=delimiter,
                header=None,
                names=list(range(width)),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
                nrows=opts.max_rows,
            )
        except pd.errors.ParserError as e:
            raise WorkbookReadError(
                f"Failed to parse CSV: {e}", file_path=filename
            ) from e

        rows: list[list[Any]] = []
        for record in df.itertuples(index=False, name=None):
            # Short rows come back padded with NaN
            values = [
                value if isinstance(value, str) and value else None
                for value in record
            ]
            if opts.max_columns is not None:
                values = values[: opts.max_columns]
            rows.append(_trim_trailing_empty(values))
        return {sheet_name: rows}

    def _decode(self, content: bytes, filename: str) -> str:
        if content.startswith(b"\xef\xbb\xbf"):
            return content[3:].decode("utf-8", errors="replace")

        detected = chardet.detect(content)
        encoding = detected.get("encoding")
        confidence = detected.get("confidence", 0.0) or 0.0
        candidates = list(self.FALLBACK_ENCODINGS)
        if encoding and confidence >= self.MIN_ENCODING_CONFIDENCE:
            candidates.insert(0, encoding)

        for candidate in candidates:
            try:
                return content.decode(candidate)
            except (UnicodeDecodeError, LookupError):
                continue
        raise EncodingError(
            "Could not decode CSV content",
            encoding=encoding,
            file_path=filename,
        )

    @staticmethod
    def _detect_delimiter(text: str) -> str:
        try:
            dialect = csv.Sniffer().sniff(text[:8192], delimiters=",;\t|")
            return dialect.delimiter
        except csv.Error:
            logger.debug("CSV delimiter detection failed, defaulting to comma")
            return ","


def _trim_trailing_empty(values: list[Any]) -> list[Any]:
    end = len(values)
    while end and values[end - 1] is None:
        end -= 1
    return values[:end]


def _xls_value(cell: Any, datemode: int) -> Any:
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
        return None
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    if cell.ctype == xlrd.XL_CELL_DATE:
        try:
            return xldate_as_datetime(cell.value, datemode)
        except XLDateError:
            return cell.value
    return cell.value
