"""Tests for SyntaxGuard and UndefinedNameGuard."""

import pytest

from journeyforge.guards.static.names import UndefinedNameGuard
from journeyforge.guards.static.syntax import SyntaxGuard


class TestSyntaxGuard:
    """Tests for SyntaxGuard validation."""

    @pytest.fixture
    def guard(self) -> SyntaxGuard:
        return SyntaxGuard()

    def test_valid_syntax(self, guard):
        result = guard.validate("def test_x():\n    assert True\n")
        assert result.passed is True
        assert result.feedback == "All rules passed"

    def test_invalid_syntax_reports_line(self, guard):
        result = guard.validate("x = 1\ndef broken(:\n    pass\n")
        assert result.passed is False
        (violation,) = result.violations
        assert violation.rule_id == "syntax"
        assert violation.line == 2
        assert "Syntax error" in result.feedback

    def test_empty_source(self, guard):
        assert guard.validate("").passed is True


class TestUndefinedNameGuard:
    """Tests for name resolution."""

    @pytest.fixture
    def guard(self) -> UndefinedNameGuard:
        return UndefinedNameGuard()

    def test_imported_and_defined_names(self, guard):
        source = (
            "import re\n"
            "from playwright.sync_api import Page, expect\n"
            "def test_x(page: Page):\n"
            "    pattern = re.compile('x')\n"
            "    expect(page).to_have_url(pattern)\n"
        )
        assert guard.validate(source).passed is True

    def test_missing_import(self, guard):
        source = "def test_x(page):\n    expect(page).to_have_url(re.compile('/x'))\n"
        result = guard.validate(source)
        assert result.passed is False
        assert {v.message.rsplit(": ", 1)[1] for v in result.violations} == {"expect", "re"}
        assert all(v.line == 2 for v in result.violations)

    def test_each_name_reported_once(self, guard):
        source = "def f():\n    return missing + missing\n"
        assert len(guard.validate(source).violations) == 1

    def test_lambda_arguments_and_builtins(self, guard):
        source = "handler = lambda response: len(response.url)\n"
        assert guard.validate(source).passed is True

    def test_syntax_error_left_to_syntax_guard(self, guard):
        assert guard.validate("def (:").passed is True
