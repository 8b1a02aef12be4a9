"""High value item extraction from monthly payment schedule workbooks.

The extractor finds the "High Value" report sheet, works out its header row
and columns, and returns every line item whose GIC is at least the
qualifying threshold (200). A workbook without such a report is the normal
case for many monthly exports: it yields ``None``, never an exception.

Usage:
    from pharmacy_payment_extraction.services.high_value import (
        extract_high_value_items,
    )

    items = extract_high_value_items(
        {"High Value": [["Paid Product Name", "Paid GIC Incl BB"],
                        ["Apixaban 5mg", "£250.00"]]}
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pharmacy_payment_extraction.services.high_value.layout import (
    find_high_value_sheet,
    locate_header,
    scan_for_report_markers,
)
from pharmacy_payment_extraction.services.high_value.models import (
    ExtractionOutcome,
    ExtractionStage,
    ExtractionTrace,
    HeaderLocation,
    HighValueExtraction,
    HighValueExtractionOptions,
    HighValueItem,
)
from pharmacy_payment_extraction.services.high_value.strategies import (
    ExtractionStrategy,
    SheetContext,
    default_strategies,
)
from pharmacy_payment_extraction.utils.logging import get_logger, timed_operation
from pharmacy_payment_extraction.workbook import Workbook, normalize_sheet

logger = get_logger(__name__)


class HighValueExtractor:
    """Extract high value items from a parsed workbook.

    Instances hold only configuration, so one extractor can be shared across
    threads and reused for any number of workbooks.
    """

    def __init__(
        self,
        options: HighValueExtractionOptions | None = None,
        strategies: Iterable[ExtractionStrategy] | None = None,
    ) -> None:
        self._options = options or HighValueExtractionOptions()
        self._strategies: tuple[ExtractionStrategy, ...] = (
            tuple(strategies) if strategies is not None else default_strategies()
        )

    @property
    def options(self) -> HighValueExtractionOptions:
        return self._options

    def extract(self, workbook: Workbook | None) -> HighValueExtraction:
        """Run sheet discovery, header discovery and the strategy chain.

        Args:
            workbook: Sheet name -> rows of raw cell values.

        Returns:
            The items (``None`` when nothing qualifies) and the trace.
        """
        trace = ExtractionTrace()
        sheets: Mapping[str, Any] = workbook or {}

        with timed_operation(logger, "high_value_extraction") as metrics:
            items = self._run(sheets, trace)
            metrics.sheets_scanned = len(sheets)
            metrics.rows_scanned = trace.rows_scanned
            metrics.items_extracted = len(items) if items else 0
            if trace.outcome is not None:
                metrics.custom_metrics["outcome"] = trace.outcome.value

        logger.log_extraction_outcome(
            outcome=trace.outcome.value if trace.outcome else "unknown",
            sheet_name=trace.sheet_name,
            item_count=len(items) if items else 0,
            strategy=trace.strategy,
        )
        return HighValueExtraction(items=items, trace=trace)

    def _run(
        self, sheets: Mapping[str, Any], trace: ExtractionTrace
    ) -> tuple[HighValueItem, ...] | None:
        sheet_names = list(sheets)
        sheet_name = find_high_value_sheet(sheet_names)
        if sheet_name is None:
            trace.record(
                ExtractionStage.SHEET_DISCOVERY,
                "No High Value sheet found in workbook",
                sheets=sheet_names,
            )
            scan_for_report_markers(sheets, trace, self._options.diagnostic_scan_rows)
            trace.outcome = ExtractionOutcome.NO_SHEET
            return None

        trace.sheet_name = sheet_name
        rows = normalize_sheet(sheets[sheet_name])
        trace.record(
            ExtractionStage.SHEET_DISCOVERY,
            "Found High Value sheet",
            sheet=sheet_name,
            rows=len(rows),
        )

        header = locate_header(rows, self._options, trace)
        trace.header = header
        context = SheetContext(
            sheet_name=sheet_name,
            rows=rows,
            header=header,
            options=self._options,
            trace=trace,
        )

        for strategy in self._strategies:
            items = strategy.extract(context)
            if items:
                trace.strategy = strategy.name
                trace.outcome = ExtractionOutcome.EXTRACTED
                return tuple(items)

        trace.outcome = _failure_outcome(header)
        return None


def _failure_outcome(header: HeaderLocation | None) -> ExtractionOutcome:
    if header is None:
        return ExtractionOutcome.NO_HEADER
    if not header.columns.is_complete:
        return ExtractionOutcome.NO_COLUMNS
    return ExtractionOutcome.NO_QUALIFYING_ROWS


def extract_high_value_items(
    workbook: Workbook | None,
    options: HighValueExtractionOptions | None = None,
) -> list[HighValueItem] | None:
    """Return the workbook's high value items, or ``None`` if there are none.

    Args:
        workbook: Sheet name -> rows of raw cell values.
        options: Optional overrides for the extraction limits.

    Returns:
        Items in sheet row order, or ``None`` when no report sheet, header or
        qualifying row could be found.
    """
    result = HighValueExtractor(options).extract(workbook)
    return list(result.items) if result.items is not None else None
