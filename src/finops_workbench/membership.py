"""
Column Membership Resolver - which catalog columns does the query text select?

A column counts as present only when it is a whole element of the select
list (bounded by SELECT, a comma, or the end of the clause). Containment is
never enough: `line_item_usage_amount` must not light up just because
`line_item_normalized_usage_amount` is selected.
"""

from .catalog import ColumnCatalog
from .lexer import locate_select_list


def selected_values(text: str) -> list[str]:
    """Normalized select-list elements of `text`, in order."""
    if not isinstance(text, str) or not text.strip():
        return []
    return locate_select_list(text).values()


def resolve_membership(text: str, catalog: ColumnCatalog) -> frozenset[str]:
    """
    Compute the set of catalog columns currently referenced by the query text.

    Args:
        text: Current query text from the editor
        catalog: Column catalog to check against

    Returns:
        Frozen set of catalog column names present in the select list.
        Empty or malformed text yields an empty set.
    """
    values = set(selected_values(text))
    if not values:
        return frozenset()
    return frozenset(name for name in catalog.column_names() if name in values)


def is_column_present(text: str, column: str) -> bool:
    return bool(column) and column in selected_values(text)
