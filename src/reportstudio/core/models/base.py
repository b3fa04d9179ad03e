"""Base models and types used across all modules.

This module contains the fundamental types that don't belong to any specific
component (connectors, detection, pipeline, cache).
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class Result(BaseModel, Generic[T]):
    """Result type for operations that can fail.

    Use this instead of exceptions for expected failures.
    Exceptions are reserved for errors surfaced to the caller.
    """

    success: bool
    value: T | None = None
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def ok(cls, value: T, warnings: list[str] | None = None) -> Result[T]:
        """Create a successful result."""
        return cls(success=True, value=value, warnings=warnings or [])

    @classmethod
    def fail(cls, error: str) -> Result[T]:
        """Create a failed result."""
        return cls(success=False, error=error)

    def unwrap(self) -> T:
        """Get the value or raise if failed."""
        if not self.success:
            raise ValueError(f"Result failed: {self.error}")
        assert self.value is not None
        return self.value

    def map(self, fn: Callable[[T], Any]) -> Result[Any]:
        """Transform the value if successful."""
        if self.success and self.value is not None:
            return Result.ok(fn(self.value), self.warnings)
        return self


# === Enums ===


class SourceKind(str, Enum):
    """Kind of data source behind a dataset."""

    FILE = "FILE"
    DATABASE = "DATABASE"
    API = "API"
    DATASET = "DATASET"  # Output of a transformation


class SourceStatus(str, Enum):
    """Lifecycle status of a data source."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ERROR = "ERROR"


class DatabaseProvider(str, Enum):
    """Supported relational providers."""

    POSTGRESQL = "POSTGRESQL"
    MYSQL = "MYSQL"
    SQLSERVER = "SQLSERVER"
    SQLITE = "SQLITE"
    DUCKDB = "DUCKDB"


class ColumnType(str, Enum):
    """Inferred column types, from most to least specific."""

    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    STRING = "string"
    UNKNOWN = "unknown"


class IssueSeverity(str, Enum):
    """Severity of data quality issues."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# === Schema ===


class ColumnDescriptor(BaseModel):
    """One column of a dataset schema."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: ColumnType = ColumnType.UNKNOWN
    nullable: bool = True


def schema_names(columns: list[ColumnDescriptor]) -> list[str]:
    """Column names in schema order."""
    return [c.name for c in columns]
