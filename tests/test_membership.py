"""
Tests for select-list location and column membership.
"""

import pytest

from finops_workbench.catalog import DEFAULT_CATALOG
from finops_workbench.lexer import locate_select_list, tokenize
from finops_workbench.membership import (
    is_column_present,
    resolve_membership,
    selected_values,
)


class TestLexer:
    """Tests for the minimal SQL lexer"""

    def test_commas_inside_parens_and_strings_are_not_split(self):
        text = "SELECT COALESCE(a, b), 'x, y' AS label, c FROM t"
        assert locate_select_list(text).values() == [
            "COALESCE(a, b)",
            "'x, y' AS label",
            "c",
        ]

    def test_distinct_modifier_is_skipped(self):
        assert selected_values("SELECT DISTINCT a, b FROM t") == ["a", "b"]

    def test_list_stops_at_clause_keyword_and_semicolon(self):
        assert selected_values("SELECT a, b WHERE x = 1") == ["a", "b"]
        assert selected_values("SELECT a, b;") == ["a", "b"]

    def test_comments_are_dropped_from_values(self):
        text = "SELECT a, -- first\n b /* second */ FROM t"
        assert selected_values(text) == ["a", "b"]

    def test_keyword_inside_string_does_not_end_list(self):
        assert selected_values("SELECT 'from here' AS s, a FROM t") == ["'from here' AS s", "a"]

    def test_bare_list_without_select(self):
        select_list = locate_select_list("a, b")
        assert not select_list.has_select
        assert select_list.values() == ["a", "b"]

    def test_unterminated_string_does_not_raise(self):
        tokens = list(tokenize("SELECT 'oops FROM t"))
        assert tokens[-1].kind == "string"
        assert selected_values("SELECT 'oops FROM t") == ["'oops FROM t"]

    def test_whitespace_is_collapsed(self):
        text = "SELECT   SUM( cost )   AS  total FROM t"
        assert selected_values(text) == ["SUM( cost ) AS total"]

    def test_qualified_keyword_does_not_end_list(self):
        assert selected_values("SELECT t.from, b FROM t") == ["t.from", "b"]
        assert selected_values("SELECT x.order, y.limit FROM t ORDER BY 1") == [
            "x.order",
            "y.limit",
        ]

    def test_multi_word_clause_ends_list(self):
        assert selected_values("SELECT a, b GROUP BY a") == ["a", "b"]
        assert selected_values("SELECT a, b\nORDER  BY b") == ["a", "b"]

    def test_quoted_identifiers_are_single_tokens(self):
        text = 'SELECT "from", `a,b`, c FROM t'
        assert selected_values(text) == ['"from"', "`a,b`", "c"]


class TestResolveMembership:
    """Tests for resolve_membership"""

    def test_exact_element_match(self):
        text = "SELECT line_item_usage_amount, product_region FROM cur"
        assert resolve_membership(text, DEFAULT_CATALOG) == {
            "line_item_usage_amount",
            "product_region",
        }

    def test_substring_is_not_membership(self):
        """A column containing another column's name must not mark both present"""
        text = "SELECT line_item_normalized_usage_amount FROM cur"
        selected = resolve_membership(text, DEFAULT_CATALOG)
        assert "line_item_normalized_usage_amount" in selected
        assert "line_item_usage_amount" not in selected

    def test_aliased_and_wrapped_columns_are_not_members(self):
        text = "SELECT SUM(line_item_unblended_cost) AS cost, pricing_term AS term FROM cur"
        assert resolve_membership(text, DEFAULT_CATALOG) == frozenset()

    def test_column_after_from_is_not_member(self):
        text = "SELECT product_region FROM cur WHERE pricing_term = 'OnDemand'"
        assert resolve_membership(text, DEFAULT_CATALOG) == {"product_region"}

    @pytest.mark.parametrize("text", ["", "   ", "SELECT", "SELECT FROM", None, 42])
    def test_empty_or_malformed_text_yields_empty_set(self, text):
        assert resolve_membership(text, DEFAULT_CATALOG) == frozenset()

    def test_resolution_is_deterministic(self):
        text = (
            "SELECT product_region, /* note */ line_item_usage_amount,\n"
            "  SUM(line_item_unblended_cost) AS cost FROM cur GROUP BY 1, 2"
        )
        first = resolve_membership(text, DEFAULT_CATALOG)
        second = resolve_membership(text, DEFAULT_CATALOG)

        assert first == second == {"product_region", "line_item_usage_amount"}
        assert selected_values(text) == selected_values(text)

    def test_is_column_present_for_non_catalog_column(self):
        assert is_column_present("SELECT my_alias, b FROM t", "my_alias")
        assert not is_column_present("SELECT my_alias_2 FROM t", "my_alias")
        assert not is_column_present("SELECT a FROM t", "")
