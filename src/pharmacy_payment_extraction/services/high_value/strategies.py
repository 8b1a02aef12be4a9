"""Row extraction strategies for the high value report.

Strategies are tried in order by :class:`HighValueExtractor`; the first one
returning any items wins. Each strategy only reads the :class:`SheetContext`
it is handed, so they can be exercised on their own.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from pharmacy_payment_extraction.services.high_value.models import (
    UNKNOWN_PRODUCT,
    ExtractionStage,
    ExtractionTrace,
    HeaderLocation,
    HighValueExtractionOptions,
    HighValueItem,
)
from pharmacy_payment_extraction.workbook import (
    Cell,
    as_currency_number,
    as_trimmed_text,
    is_currency_figure,
)


@dataclass(frozen=True)
class SheetContext:
    """Everything a strategy needs to know about the chosen sheet."""

    sheet_name: str
    rows: Sequence[Sequence[Cell]]
    header: HeaderLocation | None
    options: HighValueExtractionOptions
    trace: ExtractionTrace


class ExtractionStrategy(Protocol):
    """A way of turning sheet rows into high value items."""

    name: str

    def extract(self, context: SheetContext) -> list[HighValueItem]: ...


class ResolvedColumnsStrategy:
    """Read rows below the header using the resolved column indexes."""

    name = "resolved_columns"

    def extract(self, context: SheetContext) -> list[HighValueItem]:
        header = context.header
        if header is None or not header.columns.is_complete:
            context.trace.record(
                ExtractionStage.ROW_EXTRACTION,
                "Skipped: no usable header",
            )
            return []

        columns = header.columns
        threshold = context.options.threshold
        items: list[HighValueItem] = []
        skipped_blank = skipped_below = 0

        data_rows = context.rows[header.row_index + 1 :]
        context.trace.rows_scanned += len(data_rows)
        for row in data_rows:
            if len(row) <= columns.required_width:
                continue
            product_cell = row[columns.product_name]  # type: ignore[index]
            gic_cell = row[columns.gic]  # type: ignore[index]
            # Blank rows may sit between blocks of data; keep scanning.
            if product_cell.is_empty and gic_cell.is_empty:
                skipped_blank += 1
                continue

            gic = as_currency_number(gic_cell)
            if gic is None or gic < threshold:
                skipped_below += 1
                continue

            items.append(
                HighValueItem(
                    product_name=as_trimmed_text(product_cell) or UNKNOWN_PRODUCT,
                    gic_incl_bb=gic,
                    quantity=_optional_number(row, columns.quantity),
                    service_flag=_optional_text(row, columns.service_flag),
                )
            )

        context.trace.record(
            ExtractionStage.ROW_EXTRACTION,
            f"Extracted {len(items)} high value items",
            start_row=header.row_index + 1,
            skipped_blank=skipped_blank,
            skipped_below_threshold=skipped_below,
        )
        return items


class StructuralFallbackStrategy:
    """Guess product name and GIC from the shape of each row.

    The first reasonably long text cell is taken as the product name and the
    largest amount at or above the threshold as the GIC. This can pick up an
    unrelated large number (a quantity or a date serial), which is accepted
    in exchange for recovering reports whose headers have drifted.
    """

    name = "structural_fallback"

    def extract(self, context: SheetContext) -> list[HighValueItem]:
        options = context.options
        header_row = context.header.row_index if context.header else -1
        start = max(options.fallback_start_row, header_row + 1)
        stop = min(len(context.rows), start + options.fallback_scan_rows)
        context.trace.rows_scanned += max(0, stop - start)
        context.trace.record(
            ExtractionStage.FALLBACK,
            "Trying direct row processing",
            start_row=start,
            end_row=stop,
        )

        items: list[HighValueItem] = []
        for index in range(start, stop):
            row = context.rows[index]
            name_cell = next(
                (cell for cell in row if self._looks_like_product(cell, options)),
                None,
            )
            if name_cell is None:
                continue
            amounts = [
                amount
                for amount in (
                    as_currency_number(cell)
                    for cell in row
                    if cell.is_number or is_currency_figure(cell)
                )
                if amount is not None and amount >= options.threshold
            ]
            if not amounts:
                continue

            item = HighValueItem(
                product_name=as_trimmed_text(name_cell),
                gic_incl_bb=max(amounts),
            )
            context.trace.record(
                ExtractionStage.FALLBACK,
                "Direct processing added item",
                row=index,
                product=item.product_name,
                gic=item.gic_incl_bb,
            )
            items.append(item)
        return items

    @staticmethod
    def _looks_like_product(cell: Cell, options: HighValueExtractionOptions) -> bool:
        return (
            cell.is_text
            and cell.text is not None
            and len(cell.text) > options.min_product_name_length
            and not is_currency_figure(cell)
        )


def _optional_number(row: Sequence[Cell], column: int | None) -> float | None:
    if column is None or column >= len(row) or row[column].is_empty:
        return None
    return as_currency_number(row[column])


def _optional_text(row: Sequence[Cell], column: int | None) -> str | None:
    if column is None or column >= len(row) or row[column].is_empty:
        return None
    return as_trimmed_text(row[column]) or None


def default_strategies() -> tuple[ExtractionStrategy, ...]:
    """Strategies in decreasing order of confidence."""
    return (ResolvedColumnsStrategy(), StructuralFallbackStrategy())
