"""
Editor helpers for the query workbench: validation, formatting, quick filters,
parameter insertion and starter templates.

Statement structure (WHERE clauses, keyword types) comes from sqlparse; the
insertion point for a new condition comes from the lexer's token stream, so
keywords inside string literals and comments are never touched.
"""

from dataclasses import dataclass
from datetime import date

import sqlparse
from sqlparse.sql import Where

from .lexer import tokenize

DESTRUCTIVE_KEYWORDS = frozenset({"DROP", "DELETE", "TRUNCATE", "ALTER"})

# Clauses that follow WHERE; a new condition is inserted before the first of them
_AFTER_WHERE = frozenset(
    {"GROUP", "ORDER", "HAVING", "LIMIT", "OFFSET", "UNION", "QUALIFY", "WINDOW"}
)

# Billing period used when the editor has no dates set
DEFAULT_PERIOD_START = "2024-01-01"
DEFAULT_PERIOD_END = "2024-01-31"


@dataclass(frozen=True)
class QueryValidation:
    is_valid: bool
    message: str = ""


def validate_query(text: str) -> QueryValidation:
    """Reject empty queries and destructive statements."""
    if not text or not text.strip():
        return QueryValidation(False, "Query cannot be empty")

    for statement in sqlparse.parse(text):
        for token in statement.flatten():
            if token.is_keyword and token.normalized in DESTRUCTIVE_KEYWORDS:
                return QueryValidation(False, "Destructive operations are not allowed in SQL Lab")

    return QueryValidation(True)


def format_query(text: str) -> str:
    """Reindent the query with one clause per line and upper-case keywords."""
    if not text or not text.strip():
        return text
    return sqlparse.format(text, reindent=True, keyword_case="upper").strip()


def _has_where(text: str) -> bool:
    statement = next((s for s in sqlparse.parse(text) if str(s).strip()), None)
    if statement is None:
        return False
    return any(isinstance(token, Where) for token in statement.tokens)


def add_where_condition(text: str, condition: str) -> str:
    """
    Add a condition to the query's top-level WHERE clause, creating the
    clause if needed. The condition goes before GROUP BY/ORDER BY/LIMIT and
    any trailing semicolon.
    """
    condition = (condition or "").strip()
    if not condition:
        return text
    if not text or not text.strip():
        return f"WHERE {condition}"

    tokens = [t for t in tokenize(text) if t.depth == 0]

    # Only look for following clauses after FROM/WHERE, so a GROUP inside the
    # select list (e.g. a column alias) cannot be mistaken for the clause
    anchor = 0
    for token in tokens:
        if token.is_keyword("FROM", "WHERE"):
            anchor = token.end

    insert_at = len(text)
    for token in tokens:
        if token.start < anchor:
            continue
        if token.kind == "semicolon" or token.is_keyword(*_AFTER_WHERE):
            insert_at = token.start
            break

    head = text[:insert_at].rstrip()
    gap = text[len(head) : insert_at]
    tail = text[insert_at:]
    keyword = "AND" if _has_where(text) else "WHERE"

    if not tail:
        return f"{head} {keyword} {condition}"
    if tail.startswith(";") and not gap:
        return f"{head} {keyword} {condition}{tail}"
    return f"{head} {keyword} {condition}{gap or ' '}{tail}"


def _day(value: date | str | None, default: str) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value) if value else default


def date_range_condition(start: date | str | None = None, end: date | str | None = None) -> str:
    """
    Usage-date range condition for a billing period, inclusive of both days.
    A missing bound falls back to the default January 2024 period.
    """
    start_day = _day(start, DEFAULT_PERIOD_START)
    end_day = _day(end, DEFAULT_PERIOD_END)
    return (
        f"line_item_usage_start_date BETWEEN '{start_day}T00:00:00Z' AND '{end_day}T23:59:59Z'"
    )


QUICK_FILTERS: dict[str, str] = {
    "date_range": date_range_condition(),
    "ec2_only": "product_product_name = 'Amazon Elastic Compute Cloud - Compute'",
    "rds_only": "product_product_name LIKE '%RDS%'",
    "cost_threshold": "line_item_unblended_cost > 100",
}

# parameter -> (comment label, marks the end of a period)
QUERY_PARAMETERS: dict[str, tuple[str, bool]] = {
    "billing_start": ("billing_period_start", False),
    "billing_end": ("billing_period_end", True),
    "service_start": ("service_period_start", False),
    "service_end": ("service_period_end", True),
}


def insert_parameter(text: str, parameter: str, day: date | str | None = None) -> str:
    """
    Append a period timestamp literal tagged with a trailing comment, e.g.
    ``'2024-01-01T00:00:00Z' -- billing_period_start``.

    Start parameters take midnight, end parameters the last second of the day.

    Raises:
        ValueError: If the parameter is unknown
    """
    if parameter not in QUERY_PARAMETERS:
        raise ValueError(
            f"Unknown parameter '{parameter}'. Available: {', '.join(QUERY_PARAMETERS)}"
        )
    label, is_end = QUERY_PARAMETERS[parameter]
    if is_end:
        stamp = f"{_day(day, DEFAULT_PERIOD_END)}T23:59:59Z"
    else:
        stamp = f"{_day(day, DEFAULT_PERIOD_START)}T00:00:00Z"

    insertion = f"'{stamp}' -- {label}"
    text = text or ""
    return f"{text} {insertion}" if text.strip() else insertion


@dataclass(frozen=True)
class QueryTemplate:
    id: str
    name: str
    category: str
    description: str
    difficulty: str
    query: str


QUERY_TEMPLATES: tuple[QueryTemplate, ...] = (
    QueryTemplate(
        id="monthly-cost",
        name="Monthly Cost Trends",
        category="Cost Analysis",
        description="Track monthly spending by service",
        difficulty="beginner",
        query="""SELECT
    DATE_FORMAT(line_item_usage_start_date, '%Y-%m') AS month,
    product_product_name AS service,
    SUM(line_item_unblended_cost) AS cost
FROM aws_cost_usage_report
WHERE line_item_usage_start_date >= DATE_SUB(CURRENT_DATE(), INTERVAL 6 MONTH)
    AND line_item_line_item_type = 'Usage'
GROUP BY month, service
ORDER BY month DESC, cost DESC;""",
    ),
    QueryTemplate(
        id="top-resources",
        name="Top Expensive Resources",
        category="Cost Analysis",
        description="Find your highest-cost resources",
        difficulty="beginner",
        query="""SELECT
    line_item_resource_id AS resource,
    product_product_name AS service,
    SUM(line_item_unblended_cost) AS total_cost,
    SUM(line_item_usage_amount) AS usage
FROM aws_cost_usage_report
WHERE line_item_usage_start_date >= DATE_SUB(CURRENT_DATE(), INTERVAL 1 MONTH)
    AND line_item_resource_id IS NOT NULL
GROUP BY resource, service
ORDER BY total_cost DESC
LIMIT 20;""",
    ),
    QueryTemplate(
        id="untagged-resources",
        name="Untagged Resources",
        category="Governance",
        description="Resources missing important tags",
        difficulty="intermediate",
        query="""SELECT
    product_product_name AS service,
    line_item_resource_id AS resource,
    SUM(line_item_unblended_cost) AS cost
FROM aws_cost_usage_report
WHERE line_item_usage_start_date >= DATE_SUB(CURRENT_DATE(), INTERVAL 1 MONTH)
    AND (resource_tags_user_environment IS NULL OR resource_tags_user_environment = '')
    AND line_item_resource_id IS NOT NULL
GROUP BY service, resource
ORDER BY cost DESC;""",
    ),
)


def get_template(template_id: str) -> QueryTemplate | None:
    return next((t for t in QUERY_TEMPLATES if t.id == template_id), None)
