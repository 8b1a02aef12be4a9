"""Data types for high value item extraction."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pharmacy_payment_extraction.utils.logging import get_logger

if TYPE_CHECKING:
    from pharmacy_payment_extraction.config import Settings

logger = get_logger(__name__)

HIGH_VALUE_THRESHOLD = 200.0
UNKNOWN_PRODUCT = "Unknown Product"


@dataclass(frozen=True)
class HighValueItem:
    """One dispensed line item whose GIC meets the high value threshold."""

    product_name: str
    gic_incl_bb: float
    quantity: float | None = None
    service_flag: str | None = None

    def __post_init__(self) -> None:
        if not self.product_name:
            raise ValueError("product_name must be a non-empty string")

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_name": self.product_name,
            "gic_incl_bb": self.gic_incl_bb,
            "quantity": self.quantity,
            "service_flag": self.service_flag,
        }


@dataclass(frozen=True)
class HighValueExtractionOptions:
    """Tunable limits for the extraction heuristics.

    The defaults describe the monthly payment schedule export. ``threshold``
    is the qualifying GIC and cannot drop below 200; items below it are never
    returned.
    """

    threshold: float = HIGH_VALUE_THRESHOLD
    marker_scan_rows: int = 20
    header_marker_offset: int = 6
    header_scan_rows: int = 30
    diagnostic_scan_rows: int = 20
    fallback_start_row: int = 10
    fallback_scan_rows: int = 50
    min_product_name_length: int = 5

    def __post_init__(self) -> None:
        if self.threshold < HIGH_VALUE_THRESHOLD:
            raise ValueError(
                f"threshold must be at least {HIGH_VALUE_THRESHOLD}, "
                f"got {self.threshold}"
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> HighValueExtractionOptions:
        return cls(
            threshold=settings.high_value_threshold,
            marker_scan_rows=settings.marker_scan_rows,
            header_marker_offset=settings.header_marker_offset,
            header_scan_rows=settings.header_scan_rows,
            diagnostic_scan_rows=settings.diagnostic_scan_rows,
            fallback_start_row=settings.fallback_start_row,
            fallback_scan_rows=settings.fallback_scan_rows,
        )


class ExtractionStage(str, Enum):
    """Pipeline stage a diagnostic event belongs to."""

    SHEET_DISCOVERY = "sheet_discovery"
    MARKER_SCAN = "marker_scan"
    HEADER_DISCOVERY = "header_discovery"
    COLUMN_RESOLUTION = "column_resolution"
    ROW_EXTRACTION = "row_extraction"
    FALLBACK = "fallback"


class ExtractionOutcome(str, Enum):
    """Why an extraction finished the way it did."""

    EXTRACTED = "extracted"
    NO_SHEET = "no_sheet"
    NO_HEADER = "no_header"
    NO_COLUMNS = "no_columns"
    NO_QUALIFYING_ROWS = "no_qualifying_rows"


class HeaderSource(str, Enum):
    """How the header row was located."""

    REPORT_MARKER = "report_marker"
    COLUMN_SCAN = "column_scan"


@dataclass(frozen=True)
class ColumnMap:
    """Column indexes resolved from a header row."""

    product_name: int | None = None
    gic: int | None = None
    quantity: int | None = None
    service_flag: int | None = None

    @property
    def is_complete(self) -> bool:
        """Both mandatory columns were found."""
        return self.product_name is not None and self.gic is not None

    @property
    def required_width(self) -> int:
        """Highest mandatory column index, or -1 when incomplete."""
        if self.product_name is None or self.gic is None:
            return -1
        return max(self.product_name, self.gic)

    def to_dict(self) -> dict[str, int | None]:
        return {
            "product_name": self.product_name,
            "gic": self.gic,
            "quantity": self.quantity,
            "service_flag": self.service_flag,
        }


@dataclass(frozen=True)
class HeaderLocation:
    """Header row position together with its resolved columns."""

    row_index: int
    source: HeaderSource
    columns: ColumnMap = field(default_factory=ColumnMap)


@dataclass(frozen=True)
class DiagnosticEvent:
    """A single step recorded while extracting."""

    stage: ExtractionStage
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class ExtractionTrace:
    """Structured record of how one extraction call went.

    A trace is created per call and returned with the result; tests and the
    API read it instead of log output.
    """

    events: list[DiagnosticEvent] = field(default_factory=list)
    sheet_name: str | None = None
    header: HeaderLocation | None = None
    strategy: str | None = None
    outcome: ExtractionOutcome | None = None
    rows_scanned: int = 0

    def record(self, stage: ExtractionStage, message: str, **details: Any) -> None:
        """Append an event and mirror it to the debug log."""
        self.events.append(DiagnosticEvent(stage, message, details))
        logger.debug(message, stage=stage.value, **details)

    def events_for(self, stage: ExtractionStage) -> list[DiagnosticEvent]:
        return [event for event in self.events if event.stage is stage]

    def to_dict(self) -> dict[str, Any]:
        header: dict[str, Any] | None = None
        if self.header is not None:
            header = {
                "row_index": self.header.row_index,
                "source": self.header.source.value,
                "columns": self.header.columns.to_dict(),
            }
        return {
            "sheet_name": self.sheet_name,
            "header": header,
            "strategy": self.strategy,
            "outcome": self.outcome.value if self.outcome else None,
            "events": [event.to_dict() for event in self.events],
        }


@dataclass(frozen=True)
class HighValueExtraction:
    """Extraction result: the items (or ``None``) plus the trace behind them."""

    items: tuple[HighValueItem, ...] | None
    trace: ExtractionTrace

    @property
    def found(self) -> bool:
        return self.items is not None
