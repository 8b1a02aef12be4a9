from __future__ import annotations

from typing import Any

import pytest

from pharmacy_payment_extraction.services.high_value import (
    ExtractionTrace,
    HighValueExtractionOptions,
)
from tests.fixtures import report_rows, schedule_sheets, workbook_bytes


@pytest.fixture
def options() -> HighValueExtractionOptions:
    return HighValueExtractionOptions()


@pytest.fixture
def trace() -> ExtractionTrace:
    return ExtractionTrace()


@pytest.fixture
def simple_report() -> dict[str, list[list[Any]]]:
    """Single qualifying row under a paid-column header at row 10."""
    return {
        "High Value": report_rows(
            header=["Paid Product Name", "Paid GIC Incl BB"],
            data=[["Apixaban 5mg", "£250.00"]],
        )
    }


@pytest.fixture
def schedule() -> dict[str, list[list[Any]]]:
    return schedule_sheets()


@pytest.fixture
def schedule_xlsx(schedule: dict[str, list[list[Any]]]) -> bytes:
    return workbook_bytes(schedule)
