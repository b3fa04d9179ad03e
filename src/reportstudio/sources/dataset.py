"""Connector for in-platform derived datasets (transformation outputs)."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from reportstudio.core.connections import ConnectionManager
from reportstudio.core.models import SourceKind
from reportstudio.core.relations import relation_cursor
from reportstudio.sources.base import ConnectorBase, FetchOptions, FetchResult
from reportstudio.sources.filtering import apply_fetch_options

RecordsLoader = Callable[[], tuple[list[str], list[dict[str, Any]]]]


class DatasetConnector(ConnectorBase):
    """Materializes a derived dataset through ``loader`` and pages it in DuckDB.

    The loader returns ``(columns, records)``; for transformation outputs it
    runs the producing pipeline.
    """

    kind = SourceKind.DATASET

    def __init__(
        self,
        loader: RecordsLoader,
        max_rows: int,
        default_limit: int,
        manager: ConnectionManager | None = None,
    ):
        self.loader = loader
        self.max_rows = max_rows
        self.default_limit = default_limit
        self.manager = manager

    def fetch(self, options: FetchOptions) -> FetchResult:
        columns, records = self.loader()
        with relation_cursor(self.manager) as cursor:
            return apply_fetch_options(
                records,
                options,
                max_rows=self.max_rows,
                default_limit=self.default_limit,
                columns=columns,
                cursor=cursor,
            )
