"""Connector layer: one adapter per source kind behind one tabular contract."""

from reportstudio.sources.base import (
    ConnectorBase,
    FetchOptions,
    FetchResult,
    FilterCondition,
    FilterOperator,
    OrderByClause,
    SortDirection,
)
from reportstudio.sources.registry import (
    ApiSource,
    ConnectorFactory,
    DatabaseSource,
    FileSource,
    SourceDescriptor,
    parse_source,
)

__all__ = [
    "ConnectorBase",
    "FetchOptions",
    "FetchResult",
    "FilterCondition",
    "FilterOperator",
    "OrderByClause",
    "SortDirection",
    "ApiSource",
    "DatabaseSource",
    "FileSource",
    "SourceDescriptor",
    "ConnectorFactory",
    "parse_source",
]
