"""Connector for uploaded files."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from reportstudio.core.connections import ConnectionManager
from reportstudio.core.errors import SourceConnectionError, ValidationError
from reportstudio.core.logging import get_logger
from reportstudio.core.models import SourceKind
from reportstudio.sources.base import ConnectorBase, FetchOptions, FetchResult
from reportstudio.sources.file.parser import ParsedTable, parse_file
from reportstudio.sources.filtering import apply_fetch_options
from reportstudio.sources.null_values import NullValueConfig, load_null_value_config

logger = get_logger(__name__)


class FileConnector(ConnectorBase):
    """Parses the whole file, then applies fetch options in DuckDB.

    Args:
        path: File location
        manager: Provides the DuckDB cursor for parsing and fetch options
        max_rows: System row cap
        default_limit: Limit used when options carry none
        file_format: Explicit format, otherwise derived from the extension
        format_options: delimiter / sheet / records_path
        null_config: Null strings (defaults to the bundled YAML)
    """

    kind = SourceKind.FILE

    def __init__(
        self,
        path: str | Path,
        manager: ConnectionManager,
        max_rows: int,
        default_limit: int,
        file_format: str | None = None,
        format_options: dict[str, Any] | None = None,
        null_config: NullValueConfig | None = None,
    ):
        self.path = Path(path)
        self.manager = manager
        self.max_rows = max_rows
        self.default_limit = default_limit
        self.file_format = file_format
        self.format_options = format_options or {}
        self.null_config = null_config or load_null_value_config()

    def load(self) -> ParsedTable:
        """Parse the complete file."""
        if not self.path.exists():
            raise SourceConnectionError("File source is not available", {"file": self.path.name})
        with self.manager.duckdb_cursor() as cursor:
            result = parse_file(
                self.path, cursor, self.null_config, self.file_format, self.format_options
            )
        if not result.success:
            raise ValidationError(
                result.error or "Failed to parse file", details={"file": self.path.name}
            )
        return result.unwrap()

    def fetch(self, options: FetchOptions) -> FetchResult:
        table = self.load()
        with self.manager.duckdb_cursor() as cursor:
            result = apply_fetch_options(
                table.records,
                options,
                max_rows=self.max_rows,
                default_limit=self.default_limit,
                columns=table.columns,
                cursor=cursor,
            )
        logger.debug(
            "file_fetched",
            file=self.path.name,
            rows=result.row_count,
            total=result.total_count,
        )
        return result

    def list_columns(self) -> list[str]:
        return self.load().columns
