"""
Query Text Mutator - add or remove a column in the select list of free-form text.

Only the select list is rewritten. Everything before it (leading comments,
the SELECT keyword) and after it (FROM onward) is kept verbatim.
"""

import logging

from .lexer import locate_select_list

logger = logging.getLogger(__name__)


def toggle_column(text: str, column: str, currently_present: bool) -> str:
    """
    Propose the next query text after the user clicks a catalog column.

    Args:
        text: Current query text
        column: Column name to insert or remove
        currently_present: Membership of the column as computed by the resolver

    Returns:
        New query text. On removal, if the column cannot be found as a list
        element, the text is returned unchanged.
    """
    if currently_present:
        return remove_column(text, column)
    return add_column(text, column)


def add_column(text: str, column: str) -> str:
    """Append `column` as the trailing element of the select list."""
    if not column:
        return text or ""
    if not text or not text.strip():
        return column

    select_list = locate_select_list(text)
    insert_at = select_list.content_end()

    core = text[:insert_at]
    rest = text[insert_at : select_list.end]
    tail = select_list.tail

    if select_list.is_empty:
        # Nothing but commas and comments: rebuild the list from the column alone
        stripped = select_list.head.rstrip()
        new_core = f"{stripped} {column}" if stripped else column
    elif core.endswith(","):
        new_core = f"{core} {column}"
    else:
        new_core = f"{core}, {column}"

    if rest and not rest[0].isspace():
        rest = " " + rest
    if not tail:
        return new_core + rest.rstrip()
    if not rest and not tail.startswith(";"):
        rest = " "
    return new_core + rest + tail


def remove_column(text: str, column: str) -> str:
    """
    Remove the first select-list element equal to `column`, together with one
    adjacent comma, and normalize the remaining list.
    """
    if not text or not column:
        return text

    select_list = locate_select_list(text)
    index = select_list.index_of(column)
    if index is None:
        logger.debug("Column %s not found in select list; leaving text unchanged", column)
        return text

    remaining = [
        element.value
        for i, element in enumerate(select_list.elements)
        if i != index and element.value
    ]
    body = ", ".join(remaining)

    head = select_list.head
    tail = select_list.tail
    original_body = select_list.body

    if not head.strip():
        # Bare list: the whole list is the text up to the tail
        if not tail.strip():
            return body
        if not body:
            return tail.strip()
        return _join_tail(body, "", tail).strip()

    lead = _leading_whitespace(original_body) or " "
    trail = _trailing_whitespace(original_body)
    result = head.rstrip() + lead + body if body else head.rstrip()
    if tail.strip():
        result = _join_tail(result, trail, tail)
    return result.strip()


def _join_tail(result: str, separator: str, tail: str) -> str:
    """Rejoin the list with the tail; a semicolon only gets the original spacing."""
    tail = tail.lstrip()
    if not separator and not tail.startswith(";"):
        separator = " "
    return result + separator + tail


def _leading_whitespace(value: str) -> str:
    return value[: len(value) - len(value.lstrip())]


def _trailing_whitespace(value: str) -> str:
    return value[len(value.rstrip()) :]
