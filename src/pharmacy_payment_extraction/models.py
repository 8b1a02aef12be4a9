"""Pydantic models for API requests and responses."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from pharmacy_payment_extraction.utils.exceptions import ErrorCode


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: str
    version: str


class SpreadsheetFormat(str, Enum):
    """Spreadsheet formats accepted for upload."""

    XLSX = "xlsx"
    XLSM = "xlsm"
    XLS = "xls"
    CSV = "csv"


class HighValueItemResponse(BaseModel):
    """A single high value line item."""

    product_name: str = Field(..., description="Paid product name as printed")
    gic_incl_bb: float = Field(
        ..., description="Paid gross ingredient cost including broken bulk"
    )
    quantity: float | None = Field(default=None, description="Paid quantity")
    service_flag: str | None = Field(default=None, description="Service flag code")
    value_band: str = Field(
        ..., description="Cost band: standard, medium (>£500) or high (>£1000)"
    )


class HighValueSummaryResponse(BaseModel):
    """Totals for the extracted high value items."""

    total_value: float = Field(..., description="Sum of GIC across all items")
    total_value_display: str = Field(..., description="Total formatted as GBP")
    item_count: int = Field(..., description="Number of high value items")
    share_of_gross_ingredient_cost: float = Field(
        default=0.0,
        description="Total as a percentage of the schedule's gross ingredient cost",
    )
    band_counts: dict[str, int] = Field(
        default_factory=dict, description="Number of items per value band"
    )


class ExtractionDiagnostics(BaseModel):
    """Why the extractor returned what it did."""

    sheet_name: str | None = Field(default=None, description="Sheet read")
    header: dict[str, Any] | None = Field(
        default=None, description="Header row index, source and column indexes"
    )
    strategy: str | None = Field(
        default=None, description="Strategy that produced the items"
    )
    outcome: str | None = Field(default=None, description="Terminal outcome")
    events: list[dict[str, Any]] = Field(
        default_factory=list, description="Ordered diagnostic events"
    )


class HighValueItemsResponse(BaseModel):
    """Response model for the high value items upload endpoint."""

    filename: str = Field(..., description="Original filename of the upload")
    source_format: SpreadsheetFormat = Field(..., description="Detected format")
    sheet_names: list[str] = Field(
        default_factory=list, description="Sheets found in the workbook"
    )
    found: bool = Field(..., description="Whether a high value report was found")
    items: list[HighValueItemResponse] = Field(default_factory=list)
    summary: HighValueSummaryResponse
    diagnostics: ExtractionDiagnostics


class ErrorDetail(BaseModel):
    """Standard error response model.

    Example:
        {
            "detail": "File size exceeds maximum allowed size",
            "error_code": "E1002",
            "request_id": "abc-123"
        }
    """

    detail: str = Field(..., description="Human-readable error message")
    error_code: str | None = Field(
        default=None,
        description=f"Error code, e.g. {ErrorCode.FILE_TOO_LARGE.value}",
    )
    details: dict[str, Any] | None = Field(
        default=None, description="Additional structured error information"
    )
    request_id: str | None = Field(
        default=None, description="Request ID for correlation"
    )
