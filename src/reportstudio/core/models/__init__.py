"""Shared models."""

from reportstudio.core.models.base import (
    ColumnDescriptor,
    ColumnType,
    DatabaseProvider,
    IssueSeverity,
    Result,
    SourceKind,
    SourceStatus,
    schema_names,
)
from reportstudio.core.models.metadata import (
    DatasetSnapshot,
    DataSourceSnapshot,
    StepSnapshot,
    TransformationSnapshot,
)

__all__ = [
    "Result",
    "SourceKind",
    "SourceStatus",
    "DatabaseProvider",
    "ColumnType",
    "IssueSeverity",
    "ColumnDescriptor",
    "schema_names",
    "DataSourceSnapshot",
    "DatasetSnapshot",
    "StepSnapshot",
    "TransformationSnapshot",
]
