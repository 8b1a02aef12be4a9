"""Builders for payment schedule workbooks used across the tests.

Example usage:
    from tests.fixtures import report_rows, workbook_bytes

    rows = report_rows(
        header=["Paid Product Name", "Paid GIC Incl BB"],
        data=[["Apixaban 5mg", "£250.00"]],
    )
    content = workbook_bytes({"High Value": rows})
"""

import csv
import io
import zipfile
from datetime import datetime
from typing import Any
from unittest.mock import MagicMock

import xlrd
from openpyxl import Workbook
from xlrd.sheet import Cell as XlsCell
from xlrd.xldate import xldate_from_datetime_tuple

PAID_HEADER = ["Paid Product Name", "Paid Quantity", "Paid GIC Incl BB", "Service Flag"]

SCHEDULE_ITEMS = [
    ["Apixaban 5mg tablets", 56, "£250.00", "ES"],
    ["Ensure Plus liquid", 30, "£1,250.50", "AS"],
    ["Paracetamol 500mg tablets", 32, "£2.10", None],
    ["Rivaroxaban 20mg tablets", 28, 612.4, "ES"],
]


def blank_rows(count: int) -> list[list[Any]]:
    """Rows with no content, as exported above a report."""
    return [[] for _ in range(count)]


def report_rows(
    header: list[Any],
    data: list[list[Any]],
    header_row: int = 10,
    preamble: dict[int, list[Any]] | None = None,
) -> list[list[Any]]:
    """Build a sheet grid with ``header`` at ``header_row`` and ``data`` below.

    Args:
        header: Header cells.
        data: Data rows placed directly under the header.
        header_row: Zero-based index of the header row.
        preamble: Optional rows to place above the header, by index.
    """
    rows = blank_rows(header_row)
    for index, row in (preamble or {}).items():
        rows[index] = list(row)
    rows.append(list(header))
    rows.extend(list(row) for row in data)
    return rows


def schedule_sheets() -> dict[str, list[list[Any]]]:
    """A realistic two-sheet monthly schedule with a marked report."""
    return {
        "Summary": [
            ["Pharmacy Payment Schedule"],
            ["Contractor", "FA123"],
            ["Gross Ingredient Cost", 45210.33],
        ],
        "High Value": report_rows(
            header=PAID_HEADER,
            data=SCHEDULE_ITEMS,
            header_row=11,
            preamble={5: ["HIGH VALUE REPORT"]},
        ),
    }


def workbook_bytes(sheets: dict[str, list[list[Any]]]) -> bytes:
    """Save sheets to an in-memory ``.xlsx`` workbook."""
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(name)
        for row_index, row in enumerate(rows, start=1):
            for col_index, value in enumerate(row, start=1):
                if value is not None:
                    ws.cell(row=row_index, column=col_index, value=value)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def csv_bytes(
    rows: list[list[Any]], delimiter: str = ",", encoding: str = "utf-8"
) -> bytes:
    """Serialise rows as CSV text in the given encoding."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return buffer.getvalue().encode(encoding)


def zip_bytes(members: dict[str, bytes]) -> bytes:
    """Build an in-memory ZIP archive, e.g. one that is not a workbook."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in members.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def _xls_cell(value: Any) -> XlsCell:
    if value is None:
        return XlsCell(xlrd.XL_CELL_EMPTY, "")
    if isinstance(value, bool):
        return XlsCell(xlrd.XL_CELL_BOOLEAN, int(value))
    if isinstance(value, datetime):
        serial = xldate_from_datetime_tuple(value.timetuple()[:6], 0)
        return XlsCell(xlrd.XL_CELL_DATE, serial)
    if isinstance(value, (int, float)):
        return XlsCell(xlrd.XL_CELL_NUMBER, float(value))
    return XlsCell(xlrd.XL_CELL_TEXT, str(value))


def xls_book(sheets: dict[str, list[list[Any]]]) -> MagicMock:
    """Stand-in for the ``xlrd`` book of a legacy ``.xls`` workbook.

    Cells are typed the way xlrd reports them; dates become serials in the
    1900 date system.
    """
    by_name: dict[str, MagicMock] = {}
    for name, rows in sheets.items():
        sheet = MagicMock()
        sheet.nrows = len(rows)
        cells = [[_xls_cell(value) for value in row] for row in rows]
        sheet.row.side_effect = lambda index, cells=cells: cells[index]
        by_name[name] = sheet

    book = MagicMock()
    book.datemode = 0
    book.sheet_names.return_value = list(sheets)
    book.sheet_by_name.side_effect = by_name.__getitem__
    return book
