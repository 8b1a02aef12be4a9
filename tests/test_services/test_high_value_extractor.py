"""Tests for the high value extractor end to end over in-memory workbooks."""

from __future__ import annotations

import copy
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from pharmacy_payment_extraction.services.high_value import (
    ExtractionOutcome,
    ExtractionStage,
    HighValueExtractionOptions,
    HighValueExtractor,
    HighValueItem,
    extract_high_value_items,
)
from pharmacy_payment_extraction.services.high_value.models import (
    HeaderSource,
    HighValueExtraction,
)
from pharmacy_payment_extraction.services.high_value.strategies import SheetContext
from pharmacy_payment_extraction.utils.logging import StructuredLogger
from tests.fixtures import blank_rows, report_rows


class TestScenarios:
    """Reference workbooks and their expected results."""

    def test_paid_columns_at_row_ten(self, simple_report) -> None:
        """Test a paid-column header at row 10 yields its qualifying row."""
        assert extract_high_value_items(simple_report) == [
            HighValueItem(product_name="Apixaban 5mg", gic_incl_bb=250.0)
        ]

    def test_below_threshold_returns_none(self) -> None:
        """Test a report with nothing at or above 200 returns None."""
        workbook = {
            "High Value": report_rows(
                ["Paid Product Name", "Paid GIC Incl BB"],
                [["Apixaban 5mg", "£150.00"]],
            )
        }
        assert extract_high_value_items(workbook) is None

    def test_no_report_sheet_returns_none(self) -> None:
        """Test a workbook without a report sheet returns None."""
        workbook = {"Summary": [["Contractor", "FA123"], ["Items", 1520]]}
        assert extract_high_value_items(workbook) is None

    def test_report_marker_locates_header(self) -> None:
        """Test the header is found six rows below the report title."""
        workbook = {
            "High Value": report_rows(
                ["Paid Product Name", "Paid GIC Incl BB"],
                [["Ensure Plus liquid", "£1,250.50"]],
                header_row=11,
                preamble={5: ["HIGH VALUE REPORT"]},
            )
        }

        result = HighValueExtractor().extract(workbook)

        assert result.trace.header is not None
        assert result.trace.header.row_index == 11
        assert result.trace.header.source is HeaderSource.REPORT_MARKER
        assert result.items == (HighValueItem("Ensure Plus liquid", 1250.5),)

    def test_generic_headers_on_oddly_named_sheet(self) -> None:
        """Test generic headers are resolved on a sheet found by name tokens."""
        workbook = {
            "Summary": [["Totals"]],
            "Costly Items Q1": [
                ["Product Name", "Cost"],
                ["Apixaban 5mg tablets", 250],
                ["Paracetamol 500mg", 2.1],
                ["Rivaroxaban 20mg", "£612.40"],
            ],
        }

        result = HighValueExtractor().extract(workbook)

        assert result.trace.sheet_name == "Costly Items Q1"
        assert result.trace.header.source is HeaderSource.COLUMN_SCAN
        assert result.trace.strategy == "resolved_columns"
        assert [item.product_name for item in result.items] == [
            "Apixaban 5mg tablets",
            "Rivaroxaban 20mg",
        ]


class TestInvariants:
    """Properties every extraction must hold."""

    def test_all_items_meet_threshold(self, schedule) -> None:
        """Test every returned item meets the threshold."""
        items = extract_high_value_items(schedule)
        assert items
        assert all(item.gic_incl_bb >= 200 for item in items)

    def test_repeat_calls_give_identical_output(self, schedule) -> None:
        """Test extraction is repeatable and leaves the input untouched."""
        snapshot = copy.deepcopy(schedule)
        extractor = HighValueExtractor()

        first = extractor.extract(schedule)
        second = extractor.extract(schedule)

        assert first.items == second.items
        assert first.trace.to_dict() == second.trace.to_dict()
        assert schedule == snapshot

    @pytest.mark.parametrize("workbook", [{}, None, {"Sheet1": None}])
    def test_empty_workbooks(self, workbook: Any) -> None:
        """Test empty or missing workbooks return None."""
        assert extract_high_value_items(workbook) is None

    def test_currency_strings_are_parsed(self) -> None:
        """Test pound-formatted GIC text is parsed."""
        workbook = {
            "High Value": report_rows(
                ["Paid Product Name", "Paid GIC Incl BB"],
                [["Ensure Plus liquid", "£1,250.50"]],
            )
        }
        items = extract_high_value_items(workbook)
        assert items[0].gic_incl_bb == 1250.50

    def test_schedule_items_in_row_order(self, schedule) -> None:
        """Test items come back in sheet row order with all columns."""
        items = extract_high_value_items(schedule)
        assert items == [
            HighValueItem("Apixaban 5mg tablets", 250.0, 56.0, "ES"),
            HighValueItem("Ensure Plus liquid", 1250.5, 30.0, "AS"),
            HighValueItem("Rivaroxaban 20mg tablets", 612.4, 28.0, "ES"),
        ]


class TestFallback:
    """Tests for falling back to structural row processing."""

    def test_unrecognised_header_uses_fallback(self) -> None:
        """Test the fallback recovers rows when no header is found."""
        workbook = {
            "High Value": [
                ["Monthly high value listing"],
                *blank_rows(10),
                ["Item description", "Units", "Amount"],
                ["Rivaroxaban 20mg tablets", 28, 345.0],
            ]
        }

        result = HighValueExtractor().extract(workbook)

        assert result.trace.header is None
        assert result.trace.strategy == "structural_fallback"
        assert result.items == (HighValueItem("Rivaroxaban 20mg tablets", 345.0),)

    def test_fallback_after_header_rows_yield_nothing(self) -> None:
        """Test the fallback runs when resolved columns yield nothing."""
        workbook = {
            "High Value": report_rows(
                ["Paid Product Name", "Paid GIC Incl BB"],
                [["Apixaban 5mg", None, None, "£480.00"]],
            )
        }

        result = HighValueExtractor().extract(workbook)

        assert result.trace.strategy == "structural_fallback"
        assert result.items == (HighValueItem("Apixaban 5mg", 480.0),)
        # one data row read by each strategy
        assert result.trace.rows_scanned == 2


class TestTrace:
    """Tests for the diagnostics returned with each result."""

    def test_no_sheet_records_marker_hits(self) -> None:
        """Test sheets mentioning the report are noted when none is named for it."""
        workbook = {
            "Summary": [["Totals"]],
            "Sheet2": [["Items with Paid GIC above £200"]],
        }

        result = HighValueExtractor().extract(workbook)

        assert not result.found
        assert result.trace.outcome is ExtractionOutcome.NO_SHEET
        hits = result.trace.events_for(ExtractionStage.MARKER_SCAN)
        assert [event.details["sheet"] for event in hits] == ["Sheet2"]

    def test_no_header_outcome(self) -> None:
        """Test a sheet without a header reports no_header."""
        workbook = {"High Value": [["Monthly schedule"], ["Nothing", "here"]]}
        result = HighValueExtractor().extract(workbook)
        assert result.trace.outcome is ExtractionOutcome.NO_HEADER

    def test_no_columns_outcome(self) -> None:
        """Test a header missing the GIC column reports no_columns."""
        workbook = {"High Value": [["Paid Product Name list"], ["Apixaban", 12]]}
        result = HighValueExtractor().extract(workbook)
        assert result.trace.outcome is ExtractionOutcome.NO_COLUMNS

    def test_no_qualifying_rows_outcome(self) -> None:
        """Test a complete header with no qualifying rows says so."""
        workbook = {
            "High Value": report_rows(
                ["Paid Product Name", "Paid GIC Incl BB"],
                [["Apixaban 5mg", "£150.00"]],
            )
        }
        result = HighValueExtractor().extract(workbook)
        assert result.trace.outcome is ExtractionOutcome.NO_QUALIFYING_ROWS

    def test_extracted_trace_to_dict(self, simple_report) -> None:
        """Test the trace serialises sheet, header, strategy and events."""
        result = HighValueExtractor().extract(simple_report)

        data = result.trace.to_dict()

        assert data["sheet_name"] == "High Value"
        assert data["outcome"] == "extracted"
        assert data["strategy"] == "resolved_columns"
        assert data["header"] == {
            "row_index": 10,
            "source": "column_scan",
            "columns": {
                "product_name": 0,
                "gic": 1,
                "quantity": None,
                "service_flag": None,
            },
        }
        stages = {event["stage"] for event in data["events"]}
        assert {"sheet_discovery", "header_discovery", "row_extraction"} <= stages

    @patch.object(StructuredLogger, "log_performance")
    def test_performance_metrics(self, mock_log: MagicMock, schedule) -> None:
        """Test the logged metrics count sheets, rows and items."""
        HighValueExtractor().extract(schedule)

        metrics = mock_log.call_args[0][0]
        assert metrics.operation == "high_value_extraction"
        assert metrics.sheets_scanned == 2
        assert metrics.rows_scanned == 4
        assert metrics.items_extracted == 3
        assert metrics.custom_metrics == {"outcome": "extracted"}


class TestExtractorConfiguration:
    """Tests for options and custom strategies."""

    def test_options_are_exposed(self) -> None:
        """Test the extractor exposes its options."""
        options = HighValueExtractionOptions(threshold=500.0)
        assert HighValueExtractor(options).options is options

    def test_threshold_override(self, schedule) -> None:
        """Test a raised threshold narrows the items."""
        options = HighValueExtractionOptions(threshold=1000.0)
        items = extract_high_value_items(schedule, options)
        assert [item.product_name for item in items] == ["Ensure Plus liquid"]

    def test_first_successful_strategy_wins(self, simple_report) -> None:
        """Test strategies after the first productive one are not run."""
        calls: list[str] = []

        class Recording:
            def __init__(self, name: str, items: list[HighValueItem]) -> None:
                self.name = name
                self._items = items

            def extract(self, context: SheetContext) -> list[HighValueItem]:
                calls.append(self.name)
                return self._items

        extractor = HighValueExtractor(
            strategies=[
                Recording("empty", []),
                Recording("found", [HighValueItem("Stub item", 999.0)]),
                Recording("never", [HighValueItem("Other", 999.0)]),
            ]
        )

        result: HighValueExtraction = extractor.extract(simple_report)

        assert calls == ["empty", "found"]
        assert result.trace.strategy == "found"
        assert result.items == (HighValueItem("Stub item", 999.0),)
