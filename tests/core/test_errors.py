"""Tests for the error taxonomy and the Result type."""

import pytest

from reportstudio.core.errors import (
    NotFoundError,
    QueryExecutionError,
    ReportingError,
    SourceConnectionError,
    TransformationStepError,
    UnknownFunctionError,
    UnsafeQueryError,
    ValidationError,
)
from reportstudio.core.models import Result


class TestErrorBodies:
    """Tests for codes, status codes and to_dict."""

    @pytest.mark.parametrize(
        ("error", "code", "status"),
        [
            (ValidationError("bad"), "validation_error", 400),
            (UnknownFunctionError("nope", ["mean"]), "unknown_function", 400),
            (NotFoundError("Dataset", "ds-1"), "not_found", 404),
            (SourceConnectionError("down"), "connection_error", 502),
            (UnsafeQueryError("DROP"), "unsafe_query", 400),
            (QueryExecutionError("failed"), "query_failed", 422),
            (TransformationStepError("boom"), "transformation_step_failed", 422),
        ],
    )
    def test_codes(self, error, code, status):
        assert isinstance(error, ReportingError)
        assert error.code == code
        assert error.status_code == status
        assert error.to_dict()["error"] == code

    def test_validation_error_carries_expectation(self):
        error = ValidationError(
            "Invalid payload", expected={"data": "list[float]"}, errors=[{"loc": ["data"]}]
        )
        assert error.to_dict() == {
            "error": "validation_error",
            "message": "Invalid payload",
            "details": {"expected": {"data": "list[float]"}, "errors": [{"loc": ["data"]}]},
        }

    def test_unknown_function_lists_available(self):
        error = UnknownFunctionError("meen", ["mean", "median"])
        assert error.available == ["mean", "median"]
        assert error.details["expected"] == {"function": ["mean", "median"]}

    def test_step_error_identifies_step(self):
        error = TransformationStepError(
            "Step 2 failed", step_id="s2", order=2, operator="join", details={"cycle": []}
        )
        assert error.details == {"cycle": [], "step_id": "s2", "order": 2, "operator": "join"}


class TestResult:
    """Tests for Result."""

    def test_ok(self):
        result = Result.ok(3, warnings=["approximate"])
        assert result.unwrap() == 3
        assert result.map(lambda v: v * 2).unwrap() == 6
        assert result.map(lambda v: v * 2).warnings == ["approximate"]

    def test_fail(self):
        result = Result.fail("no rows")
        assert not result.success
        with pytest.raises(ValueError):
            result.unwrap()
        assert result.map(lambda v: v) is result
