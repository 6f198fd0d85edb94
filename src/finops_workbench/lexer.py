"""
Select-list locator for the workbench, built on sqlparse's lexer.

This is not a SQL parser. sqlparse supplies the token stream (string literals,
quoted identifiers, comments, punctuation); this module only tracks paren
depth, finds the SELECT list of a free-form query and splits it on top-level
commas. Everything outside the SELECT list is treated as opaque text.
"""

from collections.abc import Iterator
from dataclasses import dataclass

from sqlparse import tokens as T
from sqlparse.lexer import tokenize as lex_sql

# Keywords that end the select list when found at the top level
CLAUSE_KEYWORDS = frozenset(
    {
        "FROM",
        "WHERE",
        "GROUP",
        "ORDER",
        "HAVING",
        "LIMIT",
        "OFFSET",
        "UNION",
        "INTERSECT",
        "EXCEPT",
        "WINDOW",
        "QUALIFY",
        "INTO",
    }
)

LIST_MODIFIERS = frozenset({"DISTINCT", "ALL"})

QUOTE_CHARS = "'\"`"

_PUNCTUATION_KINDS = {"(": "open", ")": "close", ",": "comma", ";": "semicolon"}


@dataclass(frozen=True)
class Token:
    """A lexical token. `depth` is the parenthesis depth the token starts at."""

    kind: str  # word | comma | semicolon | string | comment | open | close
    start: int
    end: int
    depth: int
    text: str
    qualified: bool = False  # word directly after a "." (e.g. the `from` in t.from)

    @property
    def upper(self) -> str:
        return self.text.upper()

    @property
    def head(self) -> str:
        """First word of a keyword token; sqlparse lexes `GROUP BY` as one token."""
        words = self.upper.split()
        return words[0] if words else ""

    def is_keyword(self, *names: str) -> bool:
        """True for an unqualified word token whose first word is one of `names`."""
        return self.kind == "word" and not self.qualified and self.head in names


def tokenize(text: str) -> Iterator[Token]:
    """
    Yield the tokens of `text` that matter to the workbench.

    Whitespace, operators and other punctuation are skipped. An unterminated
    string literal runs to the end of the text instead of raising.
    """
    depth = 0
    pos = 0
    after_dot = False

    for ttype, value in lex_sql(text):
        start = pos
        pos += len(value)
        qualified, after_dot = after_dot, False

        if ttype in T.Whitespace:
            continue
        if ttype in T.Comment:
            # Single-line comments carry their newline; keep it outside the token
            end = start + len(value.rstrip("\r\n"))
            yield Token("comment", start, end, depth, text[start:end])
        elif ttype in T.String or (ttype in T.Name and value[:1] in QUOTE_CHARS):
            yield Token("string", start, pos, depth, value)
        elif ttype in T.Error and value in QUOTE_CHARS:
            yield Token("string", start, len(text), depth, text[start:])
            return
        elif ttype in T.Punctuation:
            kind = _PUNCTUATION_KINDS.get(value)
            if value == ".":
                after_dot = True
            elif kind == "open":
                yield Token(kind, start, pos, depth, value)
                depth += 1
            elif kind == "close":
                depth = max(depth - 1, 0)
                yield Token(kind, start, pos, depth, value)
            elif kind:
                yield Token(kind, start, pos, depth, value)
        elif ttype in T.Keyword or ttype in T.Name or ttype in T.Number:
            yield Token("word", start, pos, depth, value, qualified=qualified)
        elif ttype in T.Literal:
            yield Token("string", start, pos, depth, value)


def clean_segment(text: str, start: int, end: int, tokens: list[Token]) -> str:
    """
    Return text[start:end] with comments dropped, whitespace runs collapsed to
    single spaces outside string literals, and surrounding whitespace trimmed.
    """
    result = ""
    cursor = start

    def _append_plain(segment: str) -> None:
        nonlocal result
        squashed = _squash(segment)
        if result.endswith(" ") and squashed.startswith(" "):
            squashed = squashed[1:]
        result += squashed

    for token in tokens:
        if token.kind not in ("string", "comment"):
            continue
        if token.end <= start or token.start >= end:
            continue
        _append_plain(text[cursor : max(token.start, cursor)])
        if token.kind == "string":
            result += text[max(token.start, start) : min(token.end, end)]
        else:
            _append_plain(" ")
        cursor = min(token.end, end)
    _append_plain(text[cursor:end])
    return result.strip()


def _squash(segment: str) -> str:
    if not segment:
        return ""
    words = segment.split()
    if not words:
        return " "
    prefix = " " if segment[0].isspace() else ""
    suffix = " " if segment[-1].isspace() else ""
    return prefix + " ".join(words) + suffix


@dataclass(frozen=True)
class ListElement:
    """One comma-separated element of a select list."""

    start: int
    end: int
    value: str  # comments dropped, whitespace collapsed, trimmed


@dataclass(frozen=True)
class SelectList:
    """
    Location of the apparent column list inside a query text.

    `start`/`end` delimit the list body. When the text has no top-level SELECT
    the whole text, up to the first clause keyword, is taken as a bare list.
    """

    text: str
    start: int
    end: int
    has_select: bool
    elements: tuple[ListElement, ...]
    tokens: tuple[Token, ...]

    @property
    def head(self) -> str:
        return self.text[: self.start]

    @property
    def body(self) -> str:
        return self.text[self.start : self.end]

    @property
    def tail(self) -> str:
        return self.text[self.end :]

    @property
    def is_empty(self) -> bool:
        return not any(element.value for element in self.elements)

    def values(self) -> list[str]:
        return [element.value for element in self.elements if element.value]

    def index_of(self, value: str) -> int | None:
        for index, element in enumerate(self.elements):
            if element.value == value:
                return index
        return None

    def content_end(self) -> int:
        """Offset just past the last real content of the list body, skipping
        trailing whitespace and comments."""
        comments = [
            t for t in self.tokens if t.kind == "comment" and self.start <= t.start < self.end
        ]
        pos = self.end
        while True:
            while pos > self.start and self.text[pos - 1].isspace():
                pos -= 1
            trailing = next((c for c in comments if c.end == pos), None)
            if trailing is None:
                return pos
            pos = trailing.start


def locate_select_list(text: str) -> SelectList:
    """Find the select list of `text`. Never raises."""
    tokens = tuple(tokenize(text))

    select_at = next(
        (
            i
            for i, token in enumerate(tokens)
            if token.depth == 0 and token.is_keyword("SELECT")
        ),
        None,
    )

    if select_at is None:
        start = 0
        scan_from = 0
    else:
        start = tokens[select_at].end
        scan_from = select_at + 1
        # Skip a DISTINCT/ALL modifier, ignoring comments in between
        for j in range(select_at + 1, len(tokens)):
            token = tokens[j]
            if token.kind == "comment":
                continue
            if token.depth == 0 and token.is_keyword(*LIST_MODIFIERS):
                start = token.end
                scan_from = j + 1
            break

    end = len(text)
    commas: list[int] = []
    for token in tokens[scan_from:]:
        if token.depth != 0:
            continue
        if token.kind == "semicolon":
            end = token.start
            break
        if token.is_keyword(*CLAUSE_KEYWORDS):
            end = token.start
            break
        if token.kind == "comma":
            commas.append(token.start)

    token_list = list(tokens)
    bounds = [start, *(c + 1 for c in commas)]
    ends = [*commas, end]
    elements = tuple(
        ListElement(seg_start, seg_end, clean_segment(text, seg_start, seg_end, token_list))
        for seg_start, seg_end in zip(bounds, ends, strict=True)
    )
    if len(elements) == 1 and not elements[0].value:
        elements = ()

    return SelectList(
        text=text,
        start=start,
        end=end,
        has_select=select_at is not None,
        elements=elements,
        tokens=tokens,
    )
