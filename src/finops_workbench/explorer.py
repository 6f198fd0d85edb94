"""
Result Explorer - everything the result grid needs for one executed result.

Binds a QueryResult to its profile cache and memoizes the most recent view,
so re-rendering with an unchanged FilterSpec costs nothing. Replace the
explorer wholesale when a new result arrives.
"""

from typing import Any

from .profiler import ColumnProfiler
from .results import ColumnProfile, DerivedView, FilterSpec, QueryResult
from .view_engine import compute_view


class ResultExplorer:
    def __init__(self, result: QueryResult):
        self.result = result
        self.profiler = ColumnProfiler(result)
        self._last_key: tuple | None = None
        self._last_view: DerivedView | None = None

    def view(self, spec: FilterSpec | None = None) -> DerivedView:
        spec = spec or FilterSpec()
        key = spec.cache_key()
        if self._last_view is None or key != self._last_key:
            self._last_view = compute_view(self.result, spec)
            self._last_key = key
        return self._last_view

    def profile(self, header: str) -> ColumnProfile:
        return self.profiler.profile(header)

    def column_summaries(self, spec: FilterSpec | None = None) -> list[dict[str, Any]]:
        """
        Per-header grid metadata: filter affordance, active filters, and
        which sort indicator (if any) to show.
        """
        spec = spec or FilterSpec()
        summaries = []
        for header in self.result.headers:
            profile = self.profile(header)
            sort_indicator = spec.sort.direction.value if spec.sort.column == header else None
            summaries.append(
                {
                    "header": header,
                    "is_numeric": profile.is_numeric,
                    "filter_kind": "numeric" if profile.is_numeric else "excel",
                    "unique_count": len(profile.unique_values),
                    "sort": sort_indicator,
                    "filtered": bool(
                        spec.column_filters.get(header)
                        or spec.excel_filters.get(header)
                        or (
                            header in spec.numeric_filters
                            and spec.numeric_filters[header].is_active
                        )
                    ),
                }
            )
        return summaries

    def summary(self) -> dict[str, Any]:
        return {
            "headers": list(self.result.headers),
            "row_count": self.result.row_count,
            "execution_time_ms": round(self.result.execution_time),
            "executed_at": self.result.executed_at.isoformat(),
            "is_large": self.result.is_large,
            "is_slow": self.result.is_slow,
        }
