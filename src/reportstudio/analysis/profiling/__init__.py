"""Data profiling and quality reporting."""

from reportstudio.analysis.profiling.models import (
    ColumnProfile,
    DataProfile,
    IssueType,
    NumericStats,
    QualityIssue,
    QualityReport,
    ValueCount,
)
from reportstudio.analysis.profiling.profiler import (
    count_duplicate_rows,
    profile_column,
    profile_data,
)
from reportstudio.analysis.profiling.quality import generate_quality_report

__all__ = [
    "ColumnProfile",
    "DataProfile",
    "IssueType",
    "NumericStats",
    "QualityIssue",
    "QualityReport",
    "ValueCount",
    "count_duplicate_rows",
    "profile_column",
    "profile_data",
    "generate_quality_report",
]
