"""Relational database sources."""

from reportstudio.sources.database.connector import (
    ConnectionTestResult,
    DatabaseConnector,
    QueryResult,
    build_url,
)
from reportstudio.sources.database.safety import (
    WRITE_DENYLIST,
    check_query_safety,
    leading_keyword,
)

__all__ = [
    "DatabaseConnector",
    "ConnectionTestResult",
    "QueryResult",
    "build_url",
    "WRITE_DENYLIST",
    "check_query_safety",
    "leading_keyword",
]
