"""High value item extraction."""

from pharmacy_payment_extraction.services.high_value.extractor import (
    HighValueExtractor,
    extract_high_value_items,
)
from pharmacy_payment_extraction.services.high_value.models import (
    HIGH_VALUE_THRESHOLD,
    ExtractionOutcome,
    ExtractionStage,
    ExtractionTrace,
    HighValueExtraction,
    HighValueExtractionOptions,
    HighValueItem,
)

__all__ = [
    "HIGH_VALUE_THRESHOLD",
    "ExtractionOutcome",
    "ExtractionStage",
    "ExtractionTrace",
    "HighValueExtraction",
    "HighValueExtractionOptions",
    "HighValueExtractor",
    "HighValueItem",
    "extract_high_value_items",
]
