"""Tests for the leading-keyword query gate."""

import pytest

from reportstudio.core.errors import UnsafeQueryError, ValidationError
from reportstudio.sources.database.safety import (
    WRITE_DENYLIST,
    check_query_safety,
    leading_keyword,
)


class TestLeadingKeyword:
    """Tests for leading_keyword."""

    def test_plain_select(self):
        assert leading_keyword("select * from t") == "SELECT"

    def test_skips_whitespace_and_comments(self):
        query = "  \n-- monthly totals\n/* owner: finance */  WITH x AS (SELECT 1) SELECT * FROM x"
        assert leading_keyword(query) == "WITH"

    def test_skips_opening_parentheses(self):
        assert leading_keyword("((SELECT 1))") == "SELECT"

    def test_empty(self):
        assert leading_keyword("   -- nothing here") is None


class TestCheckQuerySafety:
    """Tests for check_query_safety."""

    @pytest.mark.parametrize("keyword", sorted(WRITE_DENYLIST))
    def test_denylisted_keywords_rejected(self, keyword):
        with pytest.raises(UnsafeQueryError) as exc_info:
            check_query_safety(f"{keyword} something")
        assert exc_info.value.keyword == keyword

    @pytest.mark.parametrize(
        "query",
        [
            "DROP TABLE x",
            "drop table x",
            "   \n\tDrop Table x",
            "-- cleanup\nDROP TABLE x",
            "/* cleanup */ DROP TABLE x",
        ],
    )
    def test_drop_rejected_regardless_of_case_and_prefix(self, query):
        with pytest.raises(UnsafeQueryError) as exc_info:
            check_query_safety(query)
        assert exc_info.value.keyword == "DROP"
        assert exc_info.value.status_code == 400

    def test_read_query_allowed(self):
        assert check_query_safety("SELECT id FROM orders") == "SELECT"

    def test_keyword_later_in_text_is_not_inspected(self):
        assert check_query_safety("SELECT 'DROP TABLE x'") == "SELECT"

    def test_empty_query_is_validation_error(self):
        with pytest.raises(ValidationError):
            check_query_safety("")
        with pytest.raises(ValidationError):
            check_query_safety("  /* only a comment */ ")
