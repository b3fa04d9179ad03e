"""Storage layer for metadata persistence.

This module provides:
- Base: SQLAlchemy declarative base for all models
- DataSource, Dataset, Transformation, TransformationStep, QueryExecutionLog
- create_metadata_engine, init_database, reset_database: Schema management
"""

from reportstudio.storage.base import (
    Base,
    create_metadata_engine,
    init_database,
    metadata_obj,
    reset_database,
)
from reportstudio.storage.models import (
    Dataset,
    DataSource,
    QueryExecutionLog,
    Transformation,
    TransformationStep,
)

__all__ = [
    "Base",
    "metadata_obj",
    "create_metadata_engine",
    "init_database",
    "reset_database",
    "DataSource",
    "Dataset",
    "Transformation",
    "TransformationStep",
    "QueryExecutionLog",
]
