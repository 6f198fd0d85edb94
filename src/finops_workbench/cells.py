"""Cell coercion shared by the profiler, the view engine and CSV export."""

import math
from typing import Any

# Display value for null cells in Excel-style filter choices
EMPTY_DISPLAY = "(empty)"


def cell_to_string(cell: Any) -> str:
    """Locale-free string form of a cell. Null becomes an empty string."""
    if cell is None:
        return ""
    if isinstance(cell, bool):
        return "true" if cell else "false"
    if isinstance(cell, float):
        if math.isfinite(cell) and cell.is_integer():
            return str(int(cell))
        return repr(cell)
    return str(cell)


def cell_to_display(cell: Any) -> str:
    """Like cell_to_string, but null cells get the "(empty)" sentinel."""
    if cell is None:
        return EMPTY_DISPLAY
    return cell_to_string(cell)


def parse_number(value: Any) -> float | None:
    """
    Parse a cell or filter value as a finite number.

    Returns None for nulls, booleans, blank strings, non-numeric text, NaN and
    infinities.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        try:
            number = float(value)
        except OverflowError:
            return None
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def cell_at(row: tuple[Any, ...], index: int) -> Any:
    """Cell at `index`, or None when the row is shorter than the header list."""
    if 0 <= index < len(row):
        return row[index]
    return None
