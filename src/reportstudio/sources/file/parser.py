"""Parsing of uploaded tabular files into records.

Supported formats:
- Delimited (.csv, .tsv, .txt): DuckDB ``read_csv`` with every column as
  VARCHAR, so no value is coerced before type inference runs.
- Spreadsheets (.xlsx, .xls): pandas ``read_excel``.
- Hierarchical JSON (.json, .jsonl): pandas ``json_normalize``; nested keys
  are joined with ".".
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import duckdb
import numpy as np
import pandas as pd

from reportstudio.core.logging import get_logger
from reportstudio.core.models import Result
from reportstudio.sources.null_values import NullValueConfig

logger = get_logger(__name__)


class FileFormat(str, Enum):
    CSV = "csv"
    TSV = "tsv"
    XLSX = "xlsx"
    XLS = "xls"
    JSON = "json"
    JSONL = "jsonl"


_EXTENSIONS = {
    ".csv": FileFormat.CSV,
    ".txt": FileFormat.CSV,
    ".tsv": FileFormat.TSV,
    ".xlsx": FileFormat.XLSX,
    ".xls": FileFormat.XLS,
    ".json": FileFormat.JSON,
    ".jsonl": FileFormat.JSONL,
    ".ndjson": FileFormat.JSONL,
}


@dataclass
class ParsedTable:
    """Parsed file payload."""

    columns: list[str]
    records: list[dict[str, Any]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.records)


def detect_format(path: Path, declared: str | None = None) -> FileFormat | None:
    """Resolve the file format from an explicit name or the extension."""
    if declared:
        try:
            return FileFormat(declared.lower().lstrip("."))
        except ValueError:
            return None
    return _EXTENSIONS.get(path.suffix.lower())


def _clean(value: Any) -> Any:
    """Convert pandas/numpy scalars to plain JSON-compatible values."""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT or value is pd.NA:
        return None
    if isinstance(value, pd.Timestamp | datetime):
        if value.hour == value.minute == value.second == value.microsecond == 0:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, np.generic):
        return _clean(value.item())
    return value


def _frame_to_table(df: pd.DataFrame, null_config: NullValueConfig) -> ParsedTable:
    columns = [str(c) for c in df.columns]
    records = []
    for row in df.itertuples(index=False, name=None):
        rec = {}
        for col, raw in zip(columns, row, strict=True):
            value = _clean(raw)
            rec[col] = None if null_config.is_null(value) else value
        records.append(rec)
    return ParsedTable(columns=columns, records=records)


def _sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def parse_delimited(
    cursor: duckdb.DuckDBPyConnection,
    path: Path,
    null_config: NullValueConfig,
    delimiter: str | None = None,
) -> ParsedTable:
    """Parse a delimited file with DuckDB, all columns as VARCHAR."""
    null_str_param = ", ".join(_sql_literal(s) for s in null_config.get_null_strings())
    delim_param = f", delim = {_sql_literal(delimiter)}" if delimiter else ""

    sql = f"""
        SELECT * FROM read_csv(
            {_sql_literal(str(path))},
            header = true,
            all_varchar = true,
            nullstr = [{null_str_param}]{delim_param}
        )
    """
    result = cursor.execute(sql)
    columns = [d[0] for d in result.description or []]
    records = []
    for row in result.fetchall():
        records.append(
            {
                col: (None if null_config.is_null(val) else val)
                for col, val in zip(columns, row, strict=True)
            }
        )
    return ParsedTable(columns=columns, records=records)


def parse_spreadsheet(
    path: Path, null_config: NullValueConfig, sheet: str | int | None = None
) -> ParsedTable:
    df = pd.read_excel(path, sheet_name=sheet if sheet is not None else 0, dtype=object)
    return _frame_to_table(df, null_config)


def parse_json(
    path: Path,
    null_config: NullValueConfig,
    lines: bool = False,
    records_path: str | None = None,
) -> ParsedTable:
    """Flatten a JSON document (or JSON lines) to a table."""
    with open(path, encoding="utf-8") as f:
        if lines:
            payload: Any = [json.loads(line) for line in f if line.strip()]
        else:
            payload = json.load(f)
    return records_to_table(extract_records(payload, records_path), null_config)


def extract_records(payload: Any, records_path: str | None = None) -> list[dict[str, Any]]:
    """Locate the list of records inside a JSON payload.

    With ``records_path`` ("data.items") that key path is followed. Otherwise a
    list is used as-is, and for an object the first list-of-objects value is
    used, falling back to the object itself as a single record.
    """
    if records_path:
        for key in records_path.split("."):
            if not isinstance(payload, dict) or key not in payload:
                raise ValueError(f"records_path '{records_path}' not found in payload")
            payload = payload[key]

    if isinstance(payload, list):
        return [item if isinstance(item, dict) else {"value": item} for item in payload]
    if isinstance(payload, dict):
        if not records_path:
            for value in payload.values():
                if isinstance(value, list) and value and isinstance(value[0], dict):
                    return list(value)
        return [payload]
    return [{"value": payload}]


def records_to_table(records: list[dict[str, Any]], null_config: NullValueConfig) -> ParsedTable:
    if not records:
        return ParsedTable(columns=[], records=[])
    df = pd.json_normalize(records, sep=".")
    return _frame_to_table(df.astype(object), null_config)


def parse_file(
    path: Path,
    cursor: duckdb.DuckDBPyConnection,
    null_config: NullValueConfig,
    file_format: str | None = None,
    options: dict[str, Any] | None = None,
) -> Result[ParsedTable]:
    """Parse a file into a ParsedTable.

    Args:
        path: File location
        cursor: DuckDB cursor used for delimited files
        null_config: Null string configuration
        file_format: Explicit format, otherwise derived from the extension
        options: Format options (delimiter, sheet, records_path)

    Returns:
        Result containing the parsed table
    """
    options = options or {}
    if not path.exists():
        return Result.fail(f"File not found: {path.name}")

    fmt = detect_format(path, file_format)
    if fmt is None:
        return Result.fail(f"Unsupported file format: {file_format or path.suffix}")

    try:
        if fmt in (FileFormat.CSV, FileFormat.TSV):
            delimiter = options.get("delimiter") or ("\t" if fmt == FileFormat.TSV else None)
            table = parse_delimited(cursor, path, null_config, delimiter)
        elif fmt in (FileFormat.XLSX, FileFormat.XLS):
            table = parse_spreadsheet(path, null_config, options.get("sheet"))
        else:
            table = parse_json(
                path,
                null_config,
                lines=fmt == FileFormat.JSONL,
                records_path=options.get("records_path"),
            )
    except (duckdb.Error, ValueError, OSError) as e:
        logger.warning("file_parse_failed", file=path.name, format=fmt.value, error=str(e))
        return Result.fail(f"Failed to parse {fmt.value} file: {e}")

    logger.debug("file_parsed", file=path.name, format=fmt.value, rows=table.row_count)
    return Result.ok(table)
