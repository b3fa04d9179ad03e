"""API routers."""

from reportstudio.api.routers import datasets, pipeline, profiling, query, statistics

__all__ = [
    "datasets",
    "pipeline",
    "profiling",
    "query",
    "statistics",
]
