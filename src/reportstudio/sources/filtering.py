"""Application of FetchOptions to parsed records.

Used by connectors whose payload is parsed client-side (files, HTTP APIs,
derived datasets). Records are registered with DuckDB and the options are
compiled to a WHERE clause, an ORDER BY and LIMIT/OFFSET. Order of
application: filter, count, order, project, offset, limit.

Comparison semantics:
- equals / in compare numerically when both sides parse as numbers,
  otherwise as text; null equals only null
- contains / startsWith / endsWith are case-insensitive; null never matches
- greaterThan / lessThan / between are numeric; a null or non-numeric cell
  never satisfies them
- ordering is numeric where values parse as numbers; nulls sort last in
  either direction; ties keep input order
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any, Literal

import duckdb

from reportstudio.core.errors import ValidationError
from reportstudio.core.relations import (
    RecordRelation,
    fetch_ids,
    number_sql,
    register_records,
    relation_cursor,
)
from reportstudio.sources.base import (
    FetchOptions,
    FetchResult,
    FilterCondition,
    FilterOperator,
    OrderByClause,
    SortDirection,
    ordered_columns,
)

Records = list[dict[str, Any]]


def to_number(value: Any) -> float | None:
    """Parse a value as a finite number, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value) if math.isfinite(value) else None
    try:
        parsed = float(str(value).strip().replace(",", ""))
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def _equals_sql(value: str, target: Any) -> tuple[str, list[Any]]:
    if target is None:
        return f"({value} IS NULL)", []
    number = to_number(target)
    if number is not None:
        sql = (
            f"COALESCE(CASE WHEN {number_sql(value)} IS NOT NULL "
            f"THEN {number_sql(value)} = ? ELSE {value} = ? END, FALSE)"
        )
        return sql, [number, str(target)]
    return f"COALESCE({value} = ?, FALSE)", [str(target)]


def _any_equals_sql(value: str, targets: Sequence[Any]) -> tuple[str, list[Any]]:
    if not targets:
        return "FALSE", []
    parts, params = [], []
    for target in targets:
        sql, p = _equals_sql(value, target)
        parts.append(sql)
        params.extend(p)
    return "(" + " OR ".join(parts) + ")", params


_TEXT_FUNCTIONS = {
    FilterOperator.CONTAINS: "contains",
    FilterOperator.STARTS_WITH: "prefix",
    FilterOperator.ENDS_WITH: "suffix",
}


def condition_sql(relation: RecordRelation, condition: FilterCondition) -> tuple[str, list[Any]]:
    """Compile one predicate to a boolean SQL expression that is never NULL."""
    value = relation.ref(condition.column)
    target = condition.value
    op = condition.operator

    if op == FilterOperator.EQUALS:
        return _equals_sql(value, target)
    if op == FilterOperator.NOT_EQUALS:
        sql, params = _equals_sql(value, target)
        return f"(NOT {sql})", params
    if op == FilterOperator.IN:
        return _any_equals_sql(value, target)
    if op == FilterOperator.NOT_IN:
        sql, params = _any_equals_sql(value, target)
        return f"(NOT {sql})", params

    if op in _TEXT_FUNCTIONS:
        fn = _TEXT_FUNCTIONS[op]
        return f"COALESCE({fn}(lower({value}), ?), FALSE)", [str(target).lower()]

    number = number_sql(value)
    if op in (FilterOperator.GREATER_THAN, FilterOperator.LESS_THAN):
        bound = to_number(target)
        if bound is None:
            return "FALSE", []
        symbol = ">" if op == FilterOperator.GREATER_THAN else "<"
        return f"COALESCE({number} {symbol} ?, FALSE)", [bound]
    # BETWEEN, inclusive
    low, high = to_number(target[0]), to_number(target[1])
    if low is None or high is None:
        return "FALSE", []
    return f"COALESCE({number} BETWEEN ? AND ?, FALSE)", [low, high]


def where_sql(
    relation: RecordRelation,
    conditions: Sequence[FilterCondition],
    match: Literal["all", "any"] = "all",
) -> tuple[str, list[Any]]:
    """Combine predicates into a WHERE clause body."""
    if not conditions:
        return "TRUE", []
    parts, params = [], []
    for condition in conditions:
        sql, p = condition_sql(relation, condition)
        parts.append(sql)
        params.extend(p)
    joiner = " AND " if match == "all" else " OR "
    return "(" + joiner.join(parts) + ")", params


def order_sql(relation: RecordRelation, order_by: Sequence[OrderByClause]) -> str:
    """ORDER BY body; the row id breaks ties so the sort is stable."""
    keys = []
    for clause in order_by:
        value = relation.ref(clause.column)
        direction = "DESC" if clause.direction == SortDirection.DESC else "ASC"
        keys.append(f"({value} IS NULL)")
        keys.append(f"{number_sql(value)} {direction} NULLS LAST")
        keys.append(f"{value} {direction} NULLS LAST")
    keys.append(relation.row_id())
    return ", ".join(keys)


def _referenced(
    filters: Sequence[FilterCondition], order_by: Sequence[OrderByClause]
) -> list[str]:
    return list(dict.fromkeys([f.column for f in filters] + [o.column for o in order_by]))


def select_rows(
    records: Records,
    filters: Sequence[FilterCondition] = (),
    order_by: Sequence[OrderByClause] = (),
    match: Literal["all", "any"] = "all",
    cursor: duckdb.DuckDBPyConnection | None = None,
) -> Records:
    """Records passing the filters, in the requested order."""
    if not filters and not order_by:
        return list(records)
    with relation_cursor(cursor=cursor) as cur:
        with register_records(cur, records, _referenced(filters, order_by)) as rel:
            where, params = where_sql(rel, filters, match)
            ids = fetch_ids(
                cur,
                f"SELECT {rel.row_id()} FROM {rel.name} WHERE {where} "
                f"ORDER BY {order_sql(rel, order_by)}",
                params,
            )
    return [records[i] for i in ids]


def apply_filters(
    records: Records,
    filters: list[FilterCondition],
    cursor: duckdb.DuckDBPyConnection | None = None,
) -> Records:
    return select_rows(records, filters=filters, cursor=cursor)


def sort_records(
    records: Records,
    order_by: list[OrderByClause],
    cursor: duckdb.DuckDBPyConnection | None = None,
) -> Records:
    """Stable multi-key sort; nulls sort last in either direction."""
    return select_rows(records, order_by=order_by, cursor=cursor)


def apply_fetch_options(
    records: Records,
    options: FetchOptions,
    max_rows: int,
    default_limit: int,
    columns: list[str] | None = None,
    cursor: duckdb.DuckDBPyConnection | None = None,
) -> FetchResult:
    """Filter, order, project and page parsed records.

    Args:
        records: Parsed rows
        options: Fetch options
        max_rows: System row cap
        default_limit: Limit used when options carry none
        columns: Known column order (defaults to first appearance in records)
        cursor: DuckDB cursor to run on (a private in-memory database otherwise)

    Returns:
        FetchResult with total_count = rows matching the filters
    """
    all_columns = columns if columns is not None else ordered_columns(records)

    projected = all_columns
    if options.columns:
        unknown = [c for c in options.columns if c not in all_columns]
        if unknown and all_columns:
            raise ValidationError(
                f"Unknown columns in projection: {unknown}",
                expected={"columns": all_columns},
            )
        projected = list(options.columns)

    limit = options.effective_limit(max_rows, default_limit)
    referenced = _referenced(options.filters, options.order_by)
    with relation_cursor(cursor=cursor) as cur:
        with register_records(cur, records, referenced) as rel:
            where, params = where_sql(rel, options.filters)
            row = cur.execute(f"SELECT count(*) FROM {rel.name} WHERE {where}", params).fetchone()
            total = int(row[0]) if row else 0
            ids = fetch_ids(
                cur,
                f"SELECT {rel.row_id()} FROM {rel.name} WHERE {where} "
                f"ORDER BY {order_sql(rel, options.order_by)} LIMIT ? OFFSET ?",
                [*params, limit, options.offset],
            )
    page = [records[i] for i in ids]
    return FetchResult.from_records(page, columns=projected, total_count=total)
