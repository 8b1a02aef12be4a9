"""Totals and presentation helpers for extracted high value items."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pharmacy_payment_extraction.services.high_value.models import HighValueItem

_CURRENCY_NOISE_RE = re.compile(r"[£$€,\s]")

HIGH_BAND_FLOOR = 1000.0
MEDIUM_BAND_FLOOR = 500.0


class ValueBand(str, Enum):
    """Cost band used to highlight the most expensive items."""

    STANDARD = "standard"
    MEDIUM = "medium"
    HIGH = "high"


def value_band(gic: float) -> ValueBand:
    """Band an item by GIC: over £1000 high, over £500 medium."""
    if gic > HIGH_BAND_FLOOR:
        return ValueBand.HIGH
    if gic > MEDIUM_BAND_FLOOR:
        return ValueBand.MEDIUM
    return ValueBand.STANDARD


def parse_currency_value(value: Any) -> float | None:
    """Parse ``"£1,234.56"``-style values; numbers pass through."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = _CURRENCY_NOISE_RE.sub("", value)
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def format_gbp(value: float | None) -> str:
    """Format an amount as pounds sterling, e.g. ``£1,250.50``."""
    if value is None:
        return "£0.00"
    sign = "-" if value < 0 else ""
    return f"{sign}£{abs(value):,.2f}"


@dataclass(frozen=True)
class HighValueSummary:
    """Aggregate view of one document's high value items."""

    items: tuple[HighValueItem, ...]
    total_value: float
    item_count: int
    share_of_gross_ingredient_cost: float = 0.0
    band_counts: dict[ValueBand, int] = field(default_factory=dict)

    @property
    def total_value_display(self) -> str:
        return format_gbp(self.total_value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_value": self.total_value,
            "total_value_display": self.total_value_display,
            "item_count": self.item_count,
            "share_of_gross_ingredient_cost": self.share_of_gross_ingredient_cost,
            "band_counts": {band.value: n for band, n in self.band_counts.items()},
        }


def summarize_high_value_items(
    items: Sequence[HighValueItem] | None,
    gross_ingredient_cost: float | None = None,
) -> HighValueSummary:
    """Summarise extracted items.

    Args:
        items: Items from the extractor; ``None`` is treated as no items.
        gross_ingredient_cost: The schedule's total GIC. When positive, the
            high value total is also reported as a percentage of it.
    """
    collected = tuple(items or ())
    total = round(sum(item.gic_incl_bb for item in collected), 2)

    share = 0.0
    if gross_ingredient_cost is not None and gross_ingredient_cost > 0:
        share = total / gross_ingredient_cost * 100

    band_counts = {band: 0 for band in ValueBand}
    for item in collected:
        band_counts[value_band(item.gic_incl_bb)] += 1

    return HighValueSummary(
        items=collected,
        total_value=total,
        item_count=len(collected),
        share_of_gross_ingredient_cost=share,
        band_counts=band_counts,
    )
