"""Records as DuckDB relations.

Filtering, ordering, grouping and joining of in-memory records run as SQL
over a registered pandas frame. Every cell is registered as text (``str``
of the value, JSON for nested values, NULL for None/NaN) next to a
``row_id`` column holding the record's position. Queries select row ids,
and callers rebuild their output from the original records, so cell values
and types are never altered by the round trip.

Example:
    with relation_cursor(manager) as cursor:
        with register_records(cursor, records, ["city"]) as rel:
            ids = cursor.execute(
                f"SELECT row_id FROM {rel.name} WHERE {rel.ref('city')} = ?", ["Berlin"]
            ).fetchall()
"""

from __future__ import annotations

import json
import math
from collections.abc import Generator, Sequence
from contextlib import contextmanager
from typing import Any
from uuid import uuid4

import duckdb
import numpy as np
import pandas as pd

from reportstudio.core.connections import ConnectionManager

ROW_ID = "row_id"

# Characters str.strip() removes from typical cells
_WHITESPACE = "' ' || chr(9) || chr(10) || chr(11) || chr(12) || chr(13)"


def as_text(value: Any) -> str | None:
    """Text form of a cell as registered with DuckDB."""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, dict | list):
        return json.dumps(value, sort_keys=True, default=str)
    return str(value)


def blank_sql(expr: str) -> str:
    """True when the text expression is NULL or only whitespace."""
    return f"({expr} IS NULL OR trim({expr}, {_WHITESPACE}) = '')"


def number_sql(expr: str) -> str:
    """The text expression as a finite DOUBLE, else NULL (thousands separators allowed)."""
    parsed = f"TRY_CAST(replace(trim({expr}, {_WHITESPACE}), ',', '') AS DOUBLE)"
    return f"(CASE WHEN isfinite({parsed}) THEN {parsed} END)"


class RecordRelation:
    """A registered frame of records; columns are addressed by name through ``ref``."""

    def __init__(self, name: str, columns: Sequence[str]):
        self.name = name
        self.columns = list(columns)
        self._positions = {c: i for i, c in enumerate(self.columns)}

    def ref(self, column: str, alias: str | None = None) -> str:
        """SQL text expression for a column; unknown columns read as NULL."""
        position = self._positions.get(column)
        if position is None:
            return "CAST(NULL AS VARCHAR)"
        prefix = f"{alias}." if alias else ""
        return f"CAST({prefix}c{position} AS VARCHAR)"

    def row_id(self, alias: str | None = None) -> str:
        return f"{alias}.{ROW_ID}" if alias else ROW_ID


def _frame(records: Sequence[dict[str, Any]], columns: Sequence[str]) -> pd.DataFrame:
    data: dict[str, Any] = {ROW_ID: np.arange(len(records), dtype="int64")}
    for i, column in enumerate(columns):
        data[f"c{i}"] = pd.array([as_text(r.get(column)) for r in records], dtype="string")
    return pd.DataFrame(data)


@contextmanager
def register_records(
    cursor: duckdb.DuckDBPyConnection,
    records: Sequence[dict[str, Any]],
    columns: Sequence[str],
) -> Generator[RecordRelation]:
    """Register records under a unique view name for the duration of the block."""
    relation = RecordRelation(f"records_{uuid4().hex}", columns)
    cursor.register(relation.name, _frame(records, relation.columns))
    try:
        yield relation
    finally:
        cursor.unregister(relation.name)


@contextmanager
def relation_cursor(
    manager: ConnectionManager | None = None,
    cursor: duckdb.DuckDBPyConnection | None = None,
) -> Generator[duckdb.DuckDBPyConnection]:
    """A DuckDB cursor for relational work over records.

    Uses ``cursor`` when given, else a cursor of the manager's connection,
    else a private in-memory database closed on exit.
    """
    if cursor is not None:
        yield cursor
        return
    if manager is not None:
        with manager.duckdb_cursor() as managed:
            yield managed
        return
    conn = duckdb.connect(":memory:")
    try:
        yield conn
    finally:
        conn.close()


def fetch_ids(cursor: duckdb.DuckDBPyConnection, sql: str, params: Sequence[Any] = ()) -> list[int]:
    """Run a query whose first column is a row id."""
    return [int(row[0]) for row in cursor.execute(sql, list(params)).fetchall()]


__all__ = [
    "ROW_ID",
    "RecordRelation",
    "as_text",
    "blank_sql",
    "fetch_ids",
    "number_sql",
    "register_records",
    "relation_cursor",
]
