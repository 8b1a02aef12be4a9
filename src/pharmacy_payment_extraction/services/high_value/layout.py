"""Locating the high value report inside a workbook.

Covers the three layout questions answered before any rows are read:
which sheet holds the report, which row is its header, and which columns
hold the product name, GIC, quantity and service flag.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pharmacy_payment_extraction.services.high_value.models import (
    ColumnMap,
    ExtractionStage,
    ExtractionTrace,
    HeaderLocation,
    HeaderSource,
    HighValueExtractionOptions,
)
from pharmacy_payment_extraction.workbook import (
    Cell,
    as_trimmed_text,
    cell_contains,
    normalize_row,
)

SHEET_NAME_TOKENS = (
    "high value",
    "high-value",
    "highvalue",
    "high cost",
    "costly items",
    "expensive items",
)
DIAGNOSTIC_MARKERS = ("high value", "paid gic", "cost above", "£200")
REPORT_MARKER = "HIGH VALUE REPORT"

PAID_PRODUCT_TOKEN = "paid product name"
PRODUCT_TOKENS = ("paid product name", "product name", "drug name")
GIC_INCL_TOKEN = "paid gic incl"
GIC_HEADER_TOKENS = ("paid gic", "cost")


def find_high_value_sheet(sheet_names: Iterable[str]) -> str | None:
    """Return the first sheet whose name looks like a high value report."""
    for name in sheet_names:
        lowered = str(name).lower()
        if any(token in lowered for token in SHEET_NAME_TOKENS):
            return name
    return None


def scan_for_report_markers(
    sheets: Mapping[str, Any],
    trace: ExtractionTrace,
    max_rows: int = 20,
) -> list[tuple[str, int]]:
    """Look for report-like text in sheets that were not picked by name.

    Purely diagnostic: hits are recorded on the trace so a missed report can
    be debugged, but never change the extraction result. A sheet that cannot
    be read is recorded and skipped.

    Returns:
        ``(sheet_name, row_index)`` pairs for every row containing a marker.
    """
    hits: list[tuple[str, int]] = []
    for sheet_name, rows in sheets.items():
        try:
            for index, raw_row in enumerate(list(rows or [])[:max_rows]):
                row_text = " ".join(
                    as_trimmed_text(cell) for cell in normalize_row(raw_row)
                ).lower()
                matched = [m for m in DIAGNOSTIC_MARKERS if m in row_text]
                if matched:
                    hits.append((sheet_name, index))
                    trace.record(
                        ExtractionStage.MARKER_SCAN,
                        "Sheet may contain high value data",
                        sheet=sheet_name,
                        row=index,
                        markers=matched,
                    )
        except Exception as exc:
            trace.record(
                ExtractionStage.MARKER_SCAN,
                "Could not inspect sheet",
                sheet=sheet_name,
                error=f"{type(exc).__name__}: {exc}",
            )
    return hits


def _row_has(row: Sequence[Cell], tokens: Iterable[str]) -> bool:
    tokens = tuple(tokens)
    return any(cell_contains(cell, token) for cell in row for token in tokens)


def find_report_marker_header(
    rows: Sequence[Sequence[Cell]],
    options: HighValueExtractionOptions,
) -> int | None:
    """Header row implied by a ``HIGH VALUE REPORT`` title in column A."""
    for index, row in enumerate(rows[: options.marker_scan_rows]):
        if row and REPORT_MARKER in as_trimmed_text(row[0]):
            return index + options.header_marker_offset
    return None


def find_column_header(
    rows: Sequence[Sequence[Cell]],
    options: HighValueExtractionOptions,
) -> int | None:
    """First row naming a paid product column, or a product and GIC column."""
    for index, row in enumerate(rows[: options.header_scan_rows]):
        if not row:
            continue
        if _row_has(row, (PAID_PRODUCT_TOKEN,)):
            return index
        if _row_has(row, PRODUCT_TOKENS) and _row_has(row, GIC_HEADER_TOKENS):
            return index
    return None


def locate_header_row(
    rows: Sequence[Sequence[Cell]],
    options: HighValueExtractionOptions,
    trace: ExtractionTrace,
) -> tuple[int, HeaderSource] | None:
    """Find the header row, trying the report marker before a column scan."""
    marker_row = find_report_marker_header(rows, options)
    if marker_row is not None:
        trace.record(
            ExtractionStage.HEADER_DISCOVERY,
            "Header row implied by report marker",
            row=marker_row,
            offset=options.header_marker_offset,
        )
        return marker_row, HeaderSource.REPORT_MARKER

    column_row = find_column_header(rows, options)
    if column_row is not None:
        trace.record(
            ExtractionStage.HEADER_DISCOVERY,
            "Header row found by column names",
            row=column_row,
        )
        return column_row, HeaderSource.COLUMN_SCAN

    trace.record(
        ExtractionStage.HEADER_DISCOVERY,
        "Could not find header row",
        rows_scanned=min(len(rows), options.header_scan_rows),
    )
    return None


def resolve_columns(header_row: Sequence[Cell]) -> ColumnMap:
    """Map header cells to columns, left to right, first match per column.

    Each cell is assigned to at most one column, checked in the order
    product name, GIC, quantity, service flag. A ``Paid GIC Incl`` header
    anywhere in the row wins over a plain ``Paid GIC`` or ``Cost`` header.
    """
    product: int | None = None
    gic_incl: int | None = None
    gic_plain: int | None = None
    quantity: int | None = None
    service_flag: int | None = None

    for index, cell in enumerate(header_row):
        text = as_trimmed_text(cell).lower()
        if not text:
            continue
        if any(token in text for token in PRODUCT_TOKENS):
            if product is None:
                product = index
        elif GIC_INCL_TOKEN in text:
            if gic_incl is None:
                gic_incl = index
        elif text == "paid gic" or "cost" in text:
            if gic_plain is None:
                gic_plain = index
        elif "paid quantity" in text or text == "quantity":
            if quantity is None:
                quantity = index
        elif "service flag" in text or text in ("flag", "service"):
            if service_flag is None:
                service_flag = index

    return ColumnMap(
        product_name=product,
        gic=gic_incl if gic_incl is not None else gic_plain,
        quantity=quantity,
        service_flag=service_flag,
    )


def locate_header(
    rows: Sequence[Sequence[Cell]],
    options: HighValueExtractionOptions,
    trace: ExtractionTrace,
) -> HeaderLocation | None:
    """Find the header row and resolve its columns.

    Returns ``None`` when no header row is found. A header whose mandatory
    columns are missing is still returned so later stages know where the
    data would have started.
    """
    found = locate_header_row(rows, options, trace)
    if found is None:
        return None
    row_index, source = found
    header_cells = rows[row_index] if row_index < len(rows) else []
    columns = resolve_columns(header_cells)
    trace.record(
        ExtractionStage.COLUMN_RESOLUTION,
        "Resolved columns" if columns.is_complete else "Critical columns not found",
        header=[as_trimmed_text(cell) for cell in header_cells],
        **columns.to_dict(),
    )
    return HeaderLocation(row_index=row_index, source=source, columns=columns)
