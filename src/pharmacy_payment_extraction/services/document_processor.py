"""Upload processing for payment schedule documents.

This module ties the upload pipeline together:
1. Loads the uploaded spreadsheet into a workbook mapping
2. Runs the high value extractor over it
3. Summarises the items for display

A document without a high value report is processed successfully with
``found=False``; only unreadable files and unexpected failures raise.
"""

from pharmacy_payment_extraction.config import Settings
from pharmacy_payment_extraction.config import settings as app_settings
from pharmacy_payment_extraction.models import (
    ExtractionDiagnostics,
    HighValueItemResponse,
    HighValueItemsResponse,
    HighValueSummaryResponse,
    SpreadsheetFormat,
)
from pharmacy_payment_extraction.services.high_value import (
    HighValueExtraction,
    HighValueExtractionOptions,
    HighValueExtractor,
)
from pharmacy_payment_extraction.services.summary import (
    summarize_high_value_items,
    value_band,
)
from pharmacy_payment_extraction.services.workbook_loader import WorkbookLoader
from pharmacy_payment_extraction.utils.exceptions import ExtractionError, PPEError
from pharmacy_payment_extraction.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


class HighValueDocumentProcessor:
    """Process one uploaded payment schedule into a high value items response."""

    def __init__(
        self,
        settings: Settings | None = None,
        loader: WorkbookLoader | None = None,
        extractor: HighValueExtractor | None = None,
    ) -> None:
        self._settings = settings or app_settings
        self._loader = loader or WorkbookLoader()
        self._extractor = extractor or HighValueExtractor(
            HighValueExtractionOptions.from_settings(self._settings)
        )

    def process(
        self,
        content: bytes,
        filename: str,
        gross_ingredient_cost: float | None = None,
    ) -> HighValueItemsResponse:
        """Load, extract and summarise one upload.

        Args:
            content: Uploaded file bytes.
            filename: Original filename.
            gross_ingredient_cost: Optional schedule total for the share figure.

        Raises:
            PPEError: If the file cannot be loaded.
            ExtractionError: If extraction fails unexpectedly.
        """
        with LogContext(document=filename):
            workbook = self._loader.load_bytes(content, filename)
            try:
                result = self._extractor.extract(workbook.sheets)
            except PPEError:
                raise
            except Exception as e:
                logger.exception("High value extraction failed")
                raise ExtractionError(
                    f"High value extraction failed: {type(e).__name__}: {e}",
                    stage="high_value_extraction",
                ) from e

            return self._build_response(
                filename=filename,
                source_format=SpreadsheetFormat(workbook.source_format),
                sheet_names=workbook.sheet_names,
                result=result,
                gross_ingredient_cost=gross_ingredient_cost,
            )

    @staticmethod
    def _build_response(
        filename: str,
        source_format: SpreadsheetFormat,
        sheet_names: list[str],
        result: HighValueExtraction,
        gross_ingredient_cost: float | None,
    ) -> HighValueItemsResponse:
        summary = summarize_high_value_items(result.items, gross_ingredient_cost)
        items = [
            HighValueItemResponse(
                **item.to_dict(), value_band=value_band(item.gic_incl_bb).value
            )
            for item in summary.items
        ]
        return HighValueItemsResponse(
            filename=filename,
            source_format=source_format,
            sheet_names=sheet_names,
            found=result.found,
            items=items,
            summary=HighValueSummaryResponse(**summary.to_dict()),
            diagnostics=ExtractionDiagnostics(**result.trace.to_dict()),
        )
