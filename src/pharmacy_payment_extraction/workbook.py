"""Cell and workbook types shared by the loader and the extractors.

A workbook reaches the extractors as a plain mapping of sheet name to a
grid of raw values (``str``, numbers or ``None``). Raw values are turned into
:class:`Cell` instances once, at the boundary, so extraction code never has
to inspect Python types itself.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any

Workbook = Mapping[str, Sequence[Sequence[Any] | None] | None]
"""Sheet name -> rows of raw cell values, in workbook order."""

_CURRENCY_SYMBOLS_RE = re.compile(r"[£$,]")
_LEADING_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_CURRENCY_FIGURE_RE = re.compile(
    r"^\s*[£$]?\s*(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?\s*$"
)


class CellKind(str, Enum):
    """Kind of value held by a spreadsheet cell."""

    EMPTY = "empty"
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"


@dataclass(frozen=True)
class Cell:
    """A single normalised spreadsheet cell."""

    kind: CellKind
    text: str | None = None
    number: float | None = None

    @property
    def is_empty(self) -> bool:
        return self.kind is CellKind.EMPTY

    @property
    def is_text(self) -> bool:
        return self.kind is CellKind.TEXT

    @property
    def is_number(self) -> bool:
        return self.kind is CellKind.NUMBER

    @property
    def is_date(self) -> bool:
        return self.kind is CellKind.DATE


EMPTY_CELL = Cell(CellKind.EMPTY)


def coerce_cell(value: Any) -> Cell:
    """Convert a raw value from a spreadsheet library into a :class:`Cell`.

    ``None``, NaN and blank strings become empty cells. Dates and times keep
    their ISO text under :attr:`CellKind.DATE` so they are never read as
    product names or amounts. Booleans and any other objects are kept as
    text so nothing is silently dropped.
    """
    if isinstance(value, Cell):
        return value
    if value is None:
        return EMPTY_CELL
    if isinstance(value, bool):
        return Cell(CellKind.TEXT, text=str(value))
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        if not math.isfinite(number):
            return EMPTY_CELL
        return Cell(CellKind.NUMBER, number=number)
    if isinstance(value, (datetime, date, time)):
        return Cell(CellKind.DATE, text=value.isoformat())
    text = value if isinstance(value, str) else str(value)
    if not text.strip():
        return EMPTY_CELL
    return Cell(CellKind.TEXT, text=text)


def normalize_row(row: Iterable[Any] | None) -> list[Cell]:
    """Normalise one raw row; a missing row becomes an empty list."""
    if row is None:
        return []
    return [coerce_cell(value) for value in row]


def normalize_sheet(rows: Iterable[Iterable[Any] | None] | None) -> list[list[Cell]]:
    """Normalise every row of a raw sheet grid."""
    if rows is None:
        return []
    return [normalize_row(row) for row in rows]


def as_trimmed_text(cell: Cell) -> str:
    """Return the display text of a cell, stripped of surrounding whitespace.

    Whole numbers render without a trailing ``.0``; empty cells give ``""``.
    """
    if (cell.is_text or cell.is_date) and cell.text is not None:
        return cell.text.strip()
    if cell.is_number and cell.number is not None:
        if cell.number.is_integer():
            return str(int(cell.number))
        return str(cell.number)
    return ""


def as_currency_number(cell: Cell) -> float | None:
    """Read a cell as a currency amount.

    Numbers pass through. Text has ``£``, ``$`` and thousands separators
    removed and its leading decimal number parsed, so ``"£1,250.50"`` gives
    ``1250.5``. Anything else gives ``None``.
    """
    if cell.is_number:
        return cell.number
    if not cell.is_text or cell.text is None:
        return None
    cleaned = _CURRENCY_SYMBOLS_RE.sub("", cell.text).lstrip()
    match = _LEADING_NUMBER_RE.match(cleaned)
    if match is None:
        return None
    value = float(match.group(0))
    return value if math.isfinite(value) else None


def is_currency_figure(cell: Cell) -> bool:
    """Whether a text cell is nothing but a (possibly currency-marked) amount."""
    return (
        cell.is_text
        and cell.text is not None
        and _CURRENCY_FIGURE_RE.match(cell.text) is not None
    )


def cell_contains(cell: Cell, token: str) -> bool:
    """Case-insensitive substring test against a cell's text."""
    return token in as_trimmed_text(cell).lower()


@dataclass
class LoadedWorkbook:
    """A workbook read from an uploaded file.

    Attributes:
        sheets: Sheet name -> rows of raw values, in workbook order.
        source_format: Format the workbook was read from (``xlsx``, ``csv``...).
        metadata: Loader metadata such as the source filename.
    """

    sheets: dict[str, list[list[Any]]]
    source_format: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def sheet_names(self) -> list[str]:
        return list(self.sheets)
