"""
Column Profiler - per-header facts used to pick and populate filter widgets.

Profiles are derived from a QueryResult only. ColumnProfiler caches them per
header for the life of one result; a new result gets a new profiler.
"""

from collections.abc import Sequence
from typing import Any

from .cells import cell_at, cell_to_display, cell_to_string, parse_number
from .results import ColumnProfile, QueryResult

NUMERIC_SAMPLE_SIZE = 100
NUMERIC_THRESHOLD = 0.7


def is_numeric_sample(cells: Sequence[Any]) -> bool:
    """
    Classify a sample of cells as numeric.

    Null and blank cells are ignored. The sample is numeric when more than 70%
    of the remaining cells parse as finite numbers; a sample with no non-empty
    cells is not numeric.
    """
    non_empty = [c for c in cells if c is not None and cell_to_string(c).strip()]
    if not non_empty:
        return False
    numeric = sum(1 for c in non_empty if parse_number(c) is not None)
    return numeric / len(non_empty) > NUMERIC_THRESHOLD


def profile_column(result: QueryResult, header: str) -> ColumnProfile:
    """
    Profile one column of a result.

    Args:
        result: Executed query result
        header: Header to profile

    Returns:
        ColumnProfile with sorted unique display values and the numeric
        classification. Unknown headers and empty results give an empty profile.
    """
    index = result.column_index(header)
    if index is None or not result.rows:
        return ColumnProfile(header=header)

    cells = [cell_at(row, index) for row in result.rows]
    unique = dict.fromkeys(cell_to_display(cell) for cell in cells)

    return ColumnProfile(
        header=header,
        unique_values=tuple(sorted(unique)),
        is_numeric=is_numeric_sample(cells[:NUMERIC_SAMPLE_SIZE]),
    )


class ColumnProfiler:
    """Profile cache bound to a single QueryResult."""

    def __init__(self, result: QueryResult):
        self.result = result
        self._cache: dict[str, ColumnProfile] = {}

    def profile(self, header: str) -> ColumnProfile:
        cached = self._cache.get(header)
        if cached is None:
            cached = profile_column(self.result, header)
            self._cache[header] = cached
        return cached

    def profiles(self) -> list[ColumnProfile]:
        return [self.profile(header) for header in self.result.headers]

    def numeric_headers(self) -> list[str]:
        return [p.header for p in self.profiles() if p.is_numeric]

    def get_cache_stats(self) -> dict[str, Any]:
        return {
            "cached_headers": sorted(self._cache),
            "count": len(self._cache),
            "total_headers": len(self.result.headers),
        }
