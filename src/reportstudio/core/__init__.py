"""Core module - configuration, errors, logging, and shared models."""

from reportstudio.core.config import Settings, get_settings
from reportstudio.core.errors import (
    NotFoundError,
    QueryExecutionError,
    ReportingError,
    SchemaMismatchError,
    SourceConnectionError,
    TransformationStepError,
    UnknownFunctionError,
    UnsafeQueryError,
    ValidationError,
)
from reportstudio.core.models.base import (
    ColumnDescriptor,
    ColumnType,
    DatabaseProvider,
    IssueSeverity,
    Result,
    SourceKind,
    SourceStatus,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Errors
    "ReportingError",
    "ValidationError",
    "UnknownFunctionError",
    "NotFoundError",
    "SourceConnectionError",
    "UnsafeQueryError",
    "QueryExecutionError",
    "TransformationStepError",
    "SchemaMismatchError",
    # Models - enums
    "ColumnType",
    "DatabaseProvider",
    "IssueSeverity",
    "SourceKind",
    "SourceStatus",
    # Models - base data structures
    "ColumnDescriptor",
    "Result",
]
