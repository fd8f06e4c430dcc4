"""Tests for structured error reports."""

from journeyforge.domain.exceptions import (
    CircuitOpen,
    ConcurrencyConflict,
    LockUnavailable,
    ParseError,
    ValidationFailure,
)
from journeyforge.domain.models import Violation


class TestErrorReports:
    def test_parse_error_names_source(self):
        error = ParseError("missing required field 'id'", "journeys/a.md", field="id")
        assert str(error) == "journeys/a.md: missing required field 'id'"
        assert error.to_dict() == {
            "error": "ParseError",
            "message": "journeys/a.md: missing required field 'id'",
            "retryable": False,
            "details": {"source": "journeys/a.md", "field": "id"},
        }

    def test_validation_failure_lists_every_violation(self):
        error = ValidationFailure(
            [Violation("no-sleep", 4, "sleep"), Violation("required-tag", 1, "tag")],
            path="tests/test_a.py",
        )
        assert str(error) == "validation failed for tests/test_a.py: no-sleep@4, required-tag@1"
        assert [v["rule_id"] for v in error.details()["violations"]] == [
            "no-sleep",
            "required-tag",
        ]

    def test_conflicts_are_retryable(self):
        assert ConcurrencyConflict(1, 2).to_dict()["retryable"] is True
        assert LockUnavailable("state/pipeline.lock").retryable is True
        assert CircuitOpen("oscillating", "JRN-1").to_dict()["retryable"] is False
