"""
Result Filter/Sort Engine - derive the visible grid from a result and a FilterSpec.

Stages run in a fixed order and combine with AND:

1. global search (any cell contains the text, case-insensitive)
2. per-column substring filters
3. Excel-style multi-select filters (exact match against the allowed set)
4. numeric comparison filters
5. sort (numeric when both cells parse, else case-insensitive text;
   null cells always last)

compute_view never raises and never mutates its inputs. Filters that name an
unknown header, and numeric filters whose value does not parse, are inert.
"""

import functools
import logging
import operator
from collections.abc import Callable

from .cells import cell_at, cell_to_display, cell_to_string, parse_number
from .results import DerivedView, FilterSpec, QueryResult, Row, SortDirection

logger = logging.getLogger(__name__)

COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "=": operator.eq,
    "!=": operator.ne,
}


def compute_view(result: QueryResult, spec: FilterSpec) -> DerivedView:
    """
    Compute the filtered, sorted view of a result.

    Args:
        result: Executed query result
        spec: Filter and sort specification

    Returns:
        DerivedView whose rows are a newly built tuple of rows taken verbatim
        from result.rows
    """
    rows: list[Row] = list(result.rows)

    rows = apply_global_search(rows, spec.global_search)

    for header, needle in spec.column_filters.items():
        rows = apply_column_filter(rows, result.column_index(header), needle)

    for header, allowed in spec.excel_filters.items():
        rows = apply_excel_filter(rows, result.column_index(header), allowed)

    for header, numeric in spec.numeric_filters.items():
        rows = apply_numeric_filter(
            rows, result.column_index(header), numeric.operator, numeric.value
        )

    if spec.sort.column:
        rows = sort_rows(rows, result.column_index(spec.sort.column), spec.sort.direction)

    return DerivedView(headers=result.headers, rows=tuple(rows))


def apply_global_search(rows: list[Row], search: str) -> list[Row]:
    if not search:
        return rows
    needle = search.lower()
    return [row for row in rows if any(needle in cell_to_string(cell).lower() for cell in row)]


def apply_column_filter(rows: list[Row], index: int | None, needle: str) -> list[Row]:
    if not needle or index is None:
        return rows
    needle = needle.lower()
    return [row for row in rows if needle in cell_to_string(cell_at(row, index)).lower()]


def apply_excel_filter(rows: list[Row], index: int | None, allowed: frozenset[str]) -> list[Row]:
    if not allowed or index is None:
        return rows
    return [row for row in rows if cell_to_display(cell_at(row, index)) in allowed]


def apply_numeric_filter(
    rows: list[Row], index: int | None, op: str, value: str
) -> list[Row]:
    if not op or not value or index is None:
        return rows

    compare = COMPARATORS.get(op)
    if compare is None:
        logger.debug("Unknown numeric operator %r; filter is inert", op)
        return rows

    target = parse_number(value)
    if target is None:
        logger.debug("Numeric filter value %r does not parse; filter is inert", value)
        return rows

    kept = []
    for row in rows:
        number = parse_number(cell_at(row, index))
        if number is not None and compare(number, target):
            kept.append(row)
    return kept


def sort_rows(rows: list[Row], index: int | None, direction: SortDirection) -> list[Row]:
    """
    Stable sort by one column. Null cells go last in both directions.
    """
    if index is None:
        return rows

    descending = direction == SortDirection.DESC

    # Decorate once so each cell is parsed a single time
    decorated = []
    for row in rows:
        cell = cell_at(row, index)
        decorated.append((cell is None, parse_number(cell), cell_to_string(cell).lower(), row))

    def _compare(a: tuple, b: tuple) -> int:
        a_null, a_num, a_text, _ = a
        b_null, b_num, b_text, _ = b
        if a_null or b_null:
            return int(a_null) - int(b_null)
        if a_num is not None and b_num is not None:
            result = (a_num > b_num) - (a_num < b_num)
        else:
            result = (a_text > b_text) - (a_text < b_text)
        return -result if descending else result

    decorated.sort(key=functools.cmp_to_key(_compare))
    return [entry[3] for entry in decorated]
