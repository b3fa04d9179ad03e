"""Profile and quality report models.

Pydantic models for profiling data structures:
- ColumnProfile: Per-column statistics computed from sampled rows
- NumericStats: Statistics for numeric columns
- ValueCount: Frequency count for top values
- QualityIssue: A detected data quality problem
- DataProfile: Result of profiling a dataset sample
- QualityReport: Scores and recommendations derived from a DataProfile
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from reportstudio.core.models import ColumnDescriptor, ColumnType, IssueSeverity


class IssueType(str, Enum):
    """Kind of quality issue."""

    MISSING = "missing"
    DUPLICATE = "duplicate"
    INVALID = "invalid"
    OUTLIER = "outlier"


class NumericStats(BaseModel):
    """Statistics for numeric columns."""

    min_value: float
    max_value: float
    mean: float
    median: float
    stddev: float  # Population standard deviation
    q1: float
    q3: float


class ValueCount(BaseModel):
    """A value with its count."""

    value: Any
    count: int
    percentage: float


class QualityIssue(BaseModel):
    """A quality issue identified in the data."""

    type: IssueType
    severity: IssueSeverity
    column: str | None = None
    message: str
    count: int | None = None
    percentage: float | None = None


class ColumnProfile(BaseModel):
    """Profile of one column over the profiled rows."""

    name: str
    type: ColumnType
    nullable: bool = True

    total_count: int
    null_count: int
    null_percentage: float
    distinct_count: int
    distinct_percentage: float  # Of non-null values
    duplicate_count: int
    invalid_count: int = 0

    min_value: Any = None
    max_value: Any = None
    numeric_stats: NumericStats | None = None

    # IQR rule, positions within the profiled rows
    outlier_indices: list[int] = Field(default_factory=list)

    top_values: list[ValueCount] = Field(default_factory=list)
    sample_values: list[Any] = Field(default_factory=list)

    completeness_score: float = Field(ge=0.0, le=100.0)
    issues: list[QualityIssue] = Field(default_factory=list)

    @property
    def outlier_count(self) -> int:
        return len(self.outlier_indices)

    @property
    def has_outliers(self) -> bool:
        return bool(self.outlier_indices)


class DataProfile(BaseModel):
    """Profile of a dataset.

    Statistics are computed over at most ``sample_size`` rows; ``is_sample``
    tells whether they are estimates or exact values for the whole input.
    """

    row_count: int  # Rows supplied
    profiled_rows: int
    is_sample: bool = False
    sample_size: int | None = None

    schema_columns: list[ColumnDescriptor] = Field(default_factory=list)
    columns: list[ColumnProfile] = Field(default_factory=list)
    duplicate_rows: int = 0
    primary_key_candidates: list[str] = Field(default_factory=list)

    issues: list[QualityIssue] = Field(default_factory=list)
    schema_warnings: list[str] = Field(default_factory=list)

    def column(self, name: str) -> ColumnProfile | None:
        return next((c for c in self.columns if c.name == name), None)


class QualityReport(BaseModel):
    """Scores and recommendations derived from a profile. Never persisted."""

    overall_score: float = Field(ge=0.0, le=100.0)
    column_scores: dict[str, float] = Field(default_factory=dict)

    completeness: float
    uniqueness: float
    validity: float

    row_count: int
    duplicate_rows: int
    is_sample: bool = False

    summary: str
    recommendations: list[str] = Field(default_factory=list)
    critical_issues: list[QualityIssue] = Field(default_factory=list)
    issues: list[QualityIssue] = Field(default_factory=list)
    schema_warnings: list[str] = Field(default_factory=list)
