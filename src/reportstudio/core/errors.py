"""Typed error taxonomy for the reporting engine.

Every error carries a stable ``code`` and an HTTP-equivalent ``status_code``
so the API layer can render it without inspecting the exception type.
Expected outcomes inside a component use ``Result`` instead
(see ``reportstudio.core.models.base``).
"""

from __future__ import annotations

from typing import Any


class ReportingError(Exception):
    """Base class for all engine errors."""

    code: str = "reporting_error"
    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Render as a JSON-compatible error body."""
        return {"error": self.code, "message": self.message, "details": self.details}


class ValidationError(ReportingError):
    """Malformed options, payload shape mismatch or invalid step configuration.

    Args:
        message: Human-readable description
        expected: Description of the expected shape
        errors: Individual field problems
    """

    code = "validation_error"
    status_code = 400

    def __init__(
        self,
        message: str,
        expected: Any = None,
        errors: list[dict[str, Any]] | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        if expected is not None:
            details["expected"] = expected
        if errors:
            details["errors"] = errors
        super().__init__(message, details)
        self.expected = expected
        self.errors = errors or []


class UnknownFunctionError(ValidationError):
    """Unrecognized statistical function name."""

    code = "unknown_function"

    def __init__(self, name: str, available: list[str]):
        super().__init__(
            f"Unknown statistical function: {name!r}",
            expected={"function": available},
        )
        self.name = name
        self.available = available


class NotFoundError(ReportingError):
    """A dataset, data source or transformation does not exist for the tenant."""

    code = "not_found"
    status_code = 404

    def __init__(self, kind: str, resource_id: str):
        super().__init__(f"{kind} not found: {resource_id}", {"kind": kind, "id": resource_id})
        self.kind = kind
        self.resource_id = resource_id


class SourceConnectionError(ReportingError):
    """Source unreachable or credentials invalid.

    The message is provider-agnostic; provider detail only goes to the log.
    """

    code = "connection_error"
    status_code = 502


class UnsafeQueryError(ReportingError):
    """Raw query text starts with a write/DDL keyword."""

    code = "unsafe_query"
    status_code = 400

    def __init__(self, keyword: str):
        super().__init__(
            f"Query rejected: {keyword} statements are not allowed",
            {"keyword": keyword},
        )
        self.keyword = keyword


class QueryExecutionError(ReportingError):
    """A read query failed at the source."""

    code = "query_failed"
    status_code = 422


class TransformationStepError(ReportingError):
    """A pipeline step failed; identifies the step so only it needs fixing."""

    code = "transformation_step_failed"
    status_code = 422

    def __init__(
        self,
        message: str,
        step_id: str | None = None,
        order: int | None = None,
        operator: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        details.update({"step_id": step_id, "order": order, "operator": operator})
        super().__init__(message, details)
        self.step_id = step_id
        self.order = order
        self.operator = operator


class SchemaMismatchError(ReportingError):
    """Declared schema conflicts with inferred types.

    Never raised by the engine itself: mismatches are collected and
    reported as warnings on profiles and quality reports.
    """

    code = "schema_mismatch"
    status_code = 200


__all__ = [
    "ReportingError",
    "ValidationError",
    "UnknownFunctionError",
    "NotFoundError",
    "SourceConnectionError",
    "UnsafeQueryError",
    "QueryExecutionError",
    "TransformationStepError",
    "SchemaMismatchError",
]
