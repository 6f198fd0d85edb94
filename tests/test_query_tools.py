"""
Tests for query editor helpers: validation, formatting, WHERE insertion, templates.
"""

from datetime import date

import pytest

from finops_workbench.catalog import DEFAULT_CATALOG
from finops_workbench.membership import resolve_membership
from finops_workbench.query_tools import (
    QUERY_TEMPLATES,
    QUICK_FILTERS,
    add_where_condition,
    date_range_condition,
    format_query,
    get_template,
    insert_parameter,
    validate_query,
)


class TestValidateQuery:
    """Tests for validate_query"""

    @pytest.mark.parametrize("text", ["", "   "])
    def test_empty_query_rejected(self, text):
        validation = validate_query(text)
        assert not validation.is_valid
        assert validation.message == "Query cannot be empty"

    @pytest.mark.parametrize(
        "text",
        ["DROP TABLE cur", "select 1; delete from cur", "ALTER TABLE x ADD y INT", "truncate cur"],
    )
    def test_destructive_statements_rejected(self, text):
        validation = validate_query(text)
        assert not validation.is_valid
        assert "Destructive" in validation.message

    def test_keywords_inside_strings_or_identifiers_are_allowed(self):
        assert validate_query("SELECT 'drop' AS label FROM cur").is_valid
        assert validate_query("SELECT deleted_at, dropped_count FROM cur").is_valid
        assert validate_query("SELECT a FROM cur -- never DELETE").is_valid


class TestFormatQuery:
    """Tests for format_query"""

    def test_clauses_on_separate_lines(self):
        text = "SELECT a, b FROM cur WHERE a > 1 AND b < 2 GROUP BY a ORDER BY b LIMIT 5"
        lines = format_query(text).splitlines()

        assert lines[0].startswith("SELECT a")
        assert "FROM cur" in lines
        assert "WHERE a > 1" in lines
        assert "AND b < 2" in [line.strip() for line in lines]
        assert "GROUP BY a" in lines
        assert "ORDER BY b" in lines
        assert lines[-1] == "LIMIT 5"

    def test_keywords_upper_cased_strings_kept(self):
        formatted = format_query("select a from cur where s = 'a from b'")
        assert formatted.splitlines() == ["SELECT a", "FROM cur", "WHERE s = 'a from b'"]

    def test_formatting_keeps_selected_columns(self):
        text = "select product_region, line_item_unblended_cost from cur where a = 1"
        assert resolve_membership(format_query(text), DEFAULT_CATALOG) == {
            "product_region",
            "line_item_unblended_cost",
        }

    @pytest.mark.parametrize("text", ["", "   "])
    def test_blank_text_returned_as_is(self, text):
        assert format_query(text) == text


class TestAddWhereCondition:
    """Tests for add_where_condition"""

    def test_creates_where_clause(self):
        assert add_where_condition("SELECT a FROM cur", "a > 1") == "SELECT a FROM cur WHERE a > 1"

    def test_ands_with_existing_where(self):
        assert (
            add_where_condition("SELECT a FROM cur WHERE b = 2", "a > 1")
            == "SELECT a FROM cur WHERE b = 2 AND a > 1"
        )

    def test_inserted_before_group_by_and_semicolon(self):
        assert (
            add_where_condition("SELECT a FROM cur GROUP BY a;", "a > 1")
            == "SELECT a FROM cur WHERE a > 1 GROUP BY a;"
        )
        assert (
            add_where_condition("SELECT a FROM cur;", "a > 1") == "SELECT a FROM cur WHERE a > 1;"
        )

    def test_where_inside_subquery_does_not_count(self):
        text = "SELECT a FROM (SELECT b FROM t WHERE b > 1) s"
        assert add_where_condition(text, "a > 1") == (
            "SELECT a FROM (SELECT b FROM t WHERE b > 1) s WHERE a > 1"
        )

    def test_where_inside_string_does_not_count(self):
        text = "SELECT a FROM cur ORDER BY 'x WHERE y'"
        assert add_where_condition(text, "a > 1") == (
            "SELECT a FROM cur WHERE a > 1 ORDER BY 'x WHERE y'"
        )

    def test_blank_condition_is_noop(self):
        assert add_where_condition("SELECT a FROM cur", "  ") == "SELECT a FROM cur"

    def test_quick_filter_keeps_select_list(self):
        text = "SELECT product_product_name, line_item_unblended_cost FROM cur"
        result = add_where_condition(text, QUICK_FILTERS["cost_threshold"])
        assert resolve_membership(result, DEFAULT_CATALOG) == resolve_membership(
            text, DEFAULT_CATALOG
        )


def test_date_range_condition():
    assert date_range_condition(date(2024, 1, 1), "2024-01-31") == (
        "line_item_usage_start_date BETWEEN '2024-01-01T00:00:00Z' AND '2024-01-31T23:59:59Z'"
    )


def test_date_range_condition_defaults_missing_bounds():
    assert date_range_condition() == QUICK_FILTERS["date_range"]
    assert date_range_condition(end="2024-02-15") == (
        "line_item_usage_start_date BETWEEN '2024-01-01T00:00:00Z' AND '2024-02-15T23:59:59Z'"
    )


class TestInsertParameter:
    """Tests for insert_parameter"""

    @pytest.mark.parametrize(
        ("parameter", "expected"),
        [
            ("billing_start", "'2024-01-01T00:00:00Z' -- billing_period_start"),
            ("billing_end", "'2024-01-31T23:59:59Z' -- billing_period_end"),
            ("service_start", "'2024-01-01T00:00:00Z' -- service_period_start"),
            ("service_end", "'2024-01-31T23:59:59Z' -- service_period_end"),
        ],
    )
    def test_defaults_to_january_period(self, parameter, expected):
        assert insert_parameter("", parameter) == expected

    def test_appended_after_a_space(self):
        text = "SELECT a FROM cur WHERE d >="
        assert insert_parameter(text, "billing_start", date(2024, 3, 1)) == (
            "SELECT a FROM cur WHERE d >= '2024-03-01T00:00:00Z' -- billing_period_start"
        )

    def test_blank_text_gets_bare_parameter(self):
        assert insert_parameter("  ", "billing_end", "2024-03-31") == (
            "'2024-03-31T23:59:59Z' -- billing_period_end"
        )

    def test_unknown_parameter_rejected(self):
        with pytest.raises(ValueError, match="Unknown parameter"):
            insert_parameter("SELECT 1", "billing_middle")


def test_templates_are_valid_queries():
    for template in QUERY_TEMPLATES:
        assert validate_query(template.query).is_valid
        assert get_template(template.id) is template
    assert get_template("missing") is None
