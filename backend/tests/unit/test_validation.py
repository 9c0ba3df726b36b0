"""Tests for input sanitization and injection detection."""

import pytest

from jobguard.security.validation import (
    contains_injection_attack,
    contains_nosql_injection,
    contains_sql_injection,
    sanitize_input,
    validate_pagination,
)


class TestSanitizeInput:

    def test_strips_script_tags(self):
        assert sanitize_input("hello <script>alert(1)</script>world") == "hello world"

    def test_strips_event_handlers(self):
        assert "onerror" not in sanitize_input('<img src=x onerror="alert(1)">')

    def test_strips_javascript_urls(self):
        assert sanitize_input("javascript:alert(1)") == "alert(1)"

    def test_recurses_into_structures(self):
        cleaned = sanitize_input({"title": " <script>x</script>Dev ", "tags": ["javascript:go"], "n": 3})
        assert cleaned == {"title": "Dev", "tags": ["go"], "n": 3}

    def test_plain_text_unchanged(self):
        assert sanitize_input("Senior Python Developer") == "Senior Python Developer"


class TestInjectionDetection:

    @pytest.mark.parametrize("text", [
        "id=1' OR '1'='1",
        "name=x; DROP TABLE users",
        "q=1 UNION SELECT password FROM users",
        "exec sp_executesql",
    ])
    def test_sql_injection(self, text):
        assert contains_sql_injection(text) is True

    @pytest.mark.parametrize("text", [
        "page=2&limit=20",
        "q=python developer&location=berlin",
        "salary=50%25",
    ])
    def test_normal_queries(self, text):
        assert contains_sql_injection(text) is False

    def test_nosql_operator(self):
        assert contains_nosql_injection({"email": {"$ne": None}}) is True

    def test_nosql_nested_in_list(self):
        assert contains_nosql_injection([{"filter": {"$where": "this.a > 1"}}]) is True

    def test_plain_body(self):
        assert contains_injection_attack({"title": "Backend engineer", "remote": True}) is False

    def test_scalar_string_checked_for_sql(self):
        assert contains_injection_attack("1; DROP TABLE jobs") is True


class TestPagination:

    @pytest.mark.parametrize("page, limit, expected", [
        (None, None, (1, 10)),
        (0, 0, (1, 10)),
        (-3, 500, (1, 100)),
        (4, 25, (4, 25)),
    ])
    def test_pagination(self, page, limit, expected):
        assert validate_pagination(page, limit) == expected
