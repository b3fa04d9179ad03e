"""Connector contracts.

All connectors return the same tabular shape (``FetchResult``) for the same
``FetchOptions`` regardless of where the rows come from.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from reportstudio.core.errors import ValidationError
from reportstudio.core.models import SourceKind


class FilterOperator(str, Enum):
    """Supported filter predicates."""

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    BETWEEN = "between"
    IN = "in"
    NOT_IN = "notIn"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class FilterCondition(BaseModel):
    """One ``column operator value`` predicate."""

    model_config = ConfigDict(frozen=True)

    column: str = Field(min_length=1)
    operator: FilterOperator
    value: Any = None

    @model_validator(mode="after")
    def _check_value_shape(self) -> FilterCondition:
        if self.operator == FilterOperator.BETWEEN:
            if not isinstance(self.value, list | tuple) or len(self.value) != 2:
                raise ValueError("'between' expects a two-element list [low, high]")
        elif self.operator in (FilterOperator.IN, FilterOperator.NOT_IN):
            if not isinstance(self.value, list | tuple):
                raise ValueError(f"'{self.operator.value}' expects a list of values")
        return self


class OrderByClause(BaseModel):
    """Sort key. Nulls always sort last."""

    model_config = ConfigDict(frozen=True)

    column: str = Field(min_length=1)
    direction: SortDirection = SortDirection.ASC


class FetchOptions(BaseModel):
    """Paging, projection, filtering and ordering for one fetch."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    limit: int | None = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)
    columns: list[str] | None = None
    filters: list[FilterCondition] = Field(default_factory=list)
    order_by: list[OrderByClause] = Field(default_factory=list)

    @classmethod
    def parse(cls, raw: dict[str, Any] | FetchOptions | None) -> FetchOptions:
        """Validate raw options, raising the engine ValidationError on bad input."""
        if raw is None:
            return cls()
        if isinstance(raw, FetchOptions):
            return raw
        try:
            return cls.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid fetch options",
                expected=fetch_options_shape(),
                errors=pydantic_errors(e),
            ) from e

    def effective_limit(self, max_rows: int, default_limit: int) -> int:
        """Row limit clamped to the system maximum."""
        requested = self.limit if self.limit is not None else default_limit
        return min(requested, max_rows)


def fetch_options_shape() -> dict[str, Any]:
    return {
        "limit": "int >= 0 (optional)",
        "offset": "int >= 0",
        "columns": "list[str] (optional)",
        "filters": [
            {"column": "str", "operator": [op.value for op in FilterOperator], "value": "any"}
        ],
        "order_by": [{"column": "str", "direction": "ASC | DESC"}],
    }


def pydantic_errors(e: PydanticValidationError) -> list[dict[str, Any]]:
    return [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in e.errors()
    ]


class FetchResult(BaseModel):
    """Rows returned by a connector."""

    columns: list[str]
    rows: list[list[Any]]
    row_count: int
    total_count: int | None = None

    @classmethod
    def from_records(
        cls,
        records: list[dict[str, Any]],
        columns: list[str] | None = None,
        total_count: int | None = None,
    ) -> FetchResult:
        """Build from dict records; column order follows ``columns`` or first appearance."""
        if columns is None:
            columns = ordered_columns(records)
        rows = [[rec.get(c) for c in columns] for rec in records]
        return cls(columns=columns, rows=rows, row_count=len(rows), total_count=total_count)

    def records(self) -> list[dict[str, Any]]:
        """Rows as dicts keyed by column name."""
        return [dict(zip(self.columns, row, strict=False)) for row in self.rows]


def ordered_columns(records: list[dict[str, Any]]) -> list[str]:
    """Union of record keys in first-appearance order."""
    seen: dict[str, None] = {}
    for rec in records:
        for key in rec:
            seen.setdefault(key, None)
    return list(seen)


class ConnectorBase(ABC):
    """Adapter for one source kind."""

    kind: SourceKind

    @abstractmethod
    def fetch(self, options: FetchOptions) -> FetchResult:
        """Fetch one page of rows."""
        ...

    def list_columns(self) -> list[str]:
        """Column names without fetching the full payload."""
        return self.fetch(FetchOptions(limit=1)).columns
