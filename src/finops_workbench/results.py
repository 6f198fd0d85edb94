"""
Result data model - executed query results, filter specs and derived views.

A QueryResult is produced once per execution and never mutated. Everything
derived from it (profiles, views) is recomputed from scratch when a new
result arrives.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum
from types import MappingProxyType
from typing import Any

Cell = str | int | float | None
Row = tuple[Cell, ...]

NUMERIC_OPERATORS = (">", ">=", "<", "<=", "=", "!=")

# Thresholds used by the results panel badges
LARGE_RESULT_ROWS = 1000
SLOW_QUERY_MS = 5000


class SortDirection(StrEnum):
    """Sort direction for the result grid"""

    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class QueryResult:
    """
    Canonical positional result of one query execution.

    Rows are positionally aligned to headers. Headers need not be catalog
    columns (they may be aliases).
    """

    headers: tuple[str, ...]
    rows: tuple[Row, ...]
    execution_time: float = 0.0  # milliseconds
    row_count: int = -1
    executed_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    query_name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", tuple(str(h) for h in self.headers))
        object.__setattr__(self, "rows", tuple(tuple(row) for row in self.rows))
        if self.row_count < 0:
            object.__setattr__(self, "row_count", len(self.rows))

    def column_index(self, header: str) -> int | None:
        try:
            return self.headers.index(header)
        except ValueError:
            return None

    @property
    def is_large(self) -> bool:
        return self.row_count > LARGE_RESULT_ROWS

    @property
    def is_slow(self) -> bool:
        return self.execution_time > SLOW_QUERY_MS

    def to_dict(self) -> dict[str, Any]:
        return {
            "headers": list(self.headers),
            "rows": [list(row) for row in self.rows],
            "executionTime": self.execution_time,
            "rowCount": self.row_count,
            "executedAt": self.executed_at.isoformat(),
            "queryName": self.query_name,
            "isLarge": self.is_large,
            "isSlow": self.is_slow,
        }


@dataclass(frozen=True)
class NumericFilter:
    operator: str = ""
    value: str = ""

    @property
    def is_active(self) -> bool:
        return bool(self.operator) and bool(self.value)


@dataclass(frozen=True)
class SortSpec:
    column: str | None = None
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class FilterSpec:
    """
    Immutable filter/sort specification for one view computation.

    Mappings are copied and wrapped read-only on construction, so a spec that
    has been handed to the engine cannot change underneath it.
    """

    global_search: str = ""
    column_filters: Mapping[str, str] = field(default_factory=dict)
    excel_filters: Mapping[str, frozenset[str]] = field(default_factory=dict)
    numeric_filters: Mapping[str, NumericFilter] = field(default_factory=dict)
    sort: SortSpec = field(default_factory=SortSpec)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "column_filters",
            MappingProxyType({str(k): str(v) for k, v in self.column_filters.items()}),
        )
        object.__setattr__(
            self,
            "excel_filters",
            MappingProxyType(
                {
                    str(k): frozenset(str(v) for v in values)
                    for k, values in self.excel_filters.items()
                }
            ),
        )
        object.__setattr__(self, "numeric_filters", MappingProxyType(dict(self.numeric_filters)))

    def __hash__(self) -> int:
        return hash(self.cache_key())

    def cache_key(self) -> tuple:
        """Hashable identity of the filters and sort, used to memoize computed views."""
        return (
            self.global_search,
            tuple(sorted(self.column_filters.items())),
            tuple(sorted((k, tuple(sorted(v))) for k, v in self.excel_filters.items())),
            tuple(sorted((k, f.operator, f.value) for k, f in self.numeric_filters.items())),
            self.sort.column,
            self.sort.direction.value,
        )

    def toggle_sort(self, column: str) -> "FilterSpec":
        """
        Spec after clicking a column header: the same column flips direction,
        a different column starts ascending.
        """
        if self.sort.column == column and self.sort.direction == SortDirection.ASC:
            direction = SortDirection.DESC
        else:
            direction = SortDirection.ASC
        return replace(self, sort=SortSpec(column=column, direction=direction))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "FilterSpec":
        """
        Build a spec from JSON-style input.

        Malformed entries are skipped rather than rejected, so a half-edited
        filter panel still produces a usable spec.
        """
        if not isinstance(data, Mapping):
            return cls()

        def _mapping(key: str, alt: str) -> Mapping[str, Any]:
            value = data.get(key, data.get(alt))
            return value if isinstance(value, Mapping) else {}

        global_search = data.get("global_search", data.get("globalSearch")) or ""

        column_filters = {
            str(k): str(v)
            for k, v in _mapping("column_filters", "columnFilters").items()
            if v is not None
        }

        excel_filters: dict[str, frozenset[str]] = {}
        for header, values in _mapping("excel_filters", "excelFilters").items():
            if isinstance(values, str):
                values = [values]
            if isinstance(values, list | tuple | set | frozenset):
                excel_filters[str(header)] = frozenset(str(v) for v in values)

        numeric_filters: dict[str, NumericFilter] = {}
        for header, spec in _mapping("numeric_filters", "numericFilters").items():
            if isinstance(spec, Mapping):
                numeric_filters[str(header)] = NumericFilter(
                    operator=str(spec.get("operator") or ""),
                    value=str(spec.get("value") if spec.get("value") is not None else ""),
                )

        sort = SortSpec()
        sort_data = data.get("sort")
        if isinstance(sort_data, Mapping) and sort_data.get("column"):
            try:
                direction = SortDirection(str(sort_data.get("direction") or "asc").lower())
            except ValueError:
                direction = SortDirection.ASC
            sort = SortSpec(column=str(sort_data["column"]), direction=direction)

        return cls(
            global_search=str(global_search),
            column_filters=column_filters,
            excel_filters=excel_filters,
            numeric_filters=numeric_filters,
            sort=sort,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "global_search": self.global_search,
            "column_filters": dict(self.column_filters),
            "excel_filters": {k: sorted(v) for k, v in self.excel_filters.items()},
            "numeric_filters": {
                k: {"operator": f.operator, "value": f.value}
                for k, f in self.numeric_filters.items()
            },
            "sort": {"column": self.sort.column, "direction": self.sort.direction.value},
        }


@dataclass(frozen=True)
class DerivedView:
    headers: tuple[str, ...]
    rows: tuple[Row, ...]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dict(self, limit: int | None = None) -> dict[str, Any]:
        rows = self.rows if limit is None else self.rows[: max(limit, 0)]
        return {
            "headers": list(self.headers),
            "rows": [list(row) for row in rows],
            "row_count": self.row_count,
            "returned_count": len(rows),
            "is_truncated": len(rows) < self.row_count,
        }


@dataclass(frozen=True)
class ColumnProfile:
    header: str
    unique_values: tuple[str, ...] = ()
    is_numeric: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "header": self.header,
            "unique_values": list(self.unique_values),
            "unique_count": len(self.unique_values),
            "is_numeric": self.is_numeric,
            "filter_kind": "numeric" if self.is_numeric else "excel",
        }


def _coerce_cell(value: Any) -> Cell:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return json.dumps(value, default=str)


def normalize_result(
    payload: Any,
    execution_time: float | None = None,
    executed_at: datetime | None = None,
    query_name: str | None = None,
) -> QueryResult:
    """
    Normalize a backend response into the canonical positional QueryResult.

    Accepts either ``{"headers": [...], "rows": [[...], ...]}`` or a list of
    row objects keyed by column name (bare, or under "rows"/"data"/"results").
    Row objects contribute headers in first-seen order; missing keys become
    null cells.

    Raises:
        ValueError: If the payload has neither shape
    """
    headers: list[str] | None = None
    records: Any = payload

    if isinstance(payload, Mapping):
        if isinstance(payload.get("headers"), list):
            headers = [str(h) for h in payload["headers"]]
        for key in ("rows", "data", "results"):
            if isinstance(payload.get(key), list):
                records = payload[key]
                break
        else:
            if headers is None:
                raise ValueError(
                    "Unrecognized query result: expected 'headers'/'rows' or a list of row objects"
                )
            records = []

        if execution_time is None:
            reported = payload.get("executionTime", payload.get("execution_time"))
            if isinstance(reported, int | float) and not isinstance(reported, bool):
                execution_time = float(reported)
        if query_name is None and isinstance(payload.get("queryName"), str):
            query_name = payload["queryName"]

    if not isinstance(records, list):
        raise ValueError("Unrecognized query result: rows must be a list")

    rows: list[Row] = []
    if records and all(isinstance(r, Mapping) for r in records):
        if headers is None:
            headers = []
            for record in records:
                for key in record:
                    if str(key) not in headers:
                        headers.append(str(key))
        for record in records:
            by_name = {str(k): v for k, v in record.items()}
            rows.append(tuple(_coerce_cell(by_name.get(h)) for h in headers))
    else:
        if records and headers is None:
            raise ValueError("Unrecognized query result: positional rows need 'headers'")
        for record in records:
            if not isinstance(record, list | tuple):
                raise ValueError("Unrecognized query result: mixed row shapes")
            rows.append(tuple(_coerce_cell(cell) for cell in record))

    return QueryResult(
        headers=tuple(headers or ()),
        rows=tuple(rows),
        execution_time=execution_time or 0.0,
        executed_at=executed_at or datetime.now(UTC),
        query_name=query_name,
    )
