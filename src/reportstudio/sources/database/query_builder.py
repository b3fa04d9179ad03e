"""Translate FetchOptions into a SQLAlchemy SELECT.

Filter values are always bound parameters; identifiers are quoted by the
dialect compiler.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Select, case, column, func, literal_column, select, table, text
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.expression import TableClause

from reportstudio.sources.base import (
    FetchOptions,
    FilterCondition,
    FilterOperator,
    SortDirection,
)


def source_table(table_name: str) -> TableClause:
    """Table clause for ``name`` or ``schema.name``."""
    if "." in table_name:
        schema, name = table_name.rsplit(".", 1)
        return table(name, schema=schema)
    return table(table_name)


def filter_clause(condition: FilterCondition) -> ColumnElement[bool]:
    col: ColumnElement[Any] = column(condition.column)
    value = condition.value
    op = condition.operator

    if op == FilterOperator.EQUALS:
        return col.is_(None) if value is None else col == value
    if op == FilterOperator.NOT_EQUALS:
        return col.is_not(None) if value is None else col != value
    if op == FilterOperator.CONTAINS:
        return col.icontains(str(value), autoescape=True)
    if op == FilterOperator.STARTS_WITH:
        return col.istartswith(str(value), autoescape=True)
    if op == FilterOperator.ENDS_WITH:
        return col.iendswith(str(value), autoescape=True)
    if op == FilterOperator.GREATER_THAN:
        return col > value
    if op == FilterOperator.LESS_THAN:
        return col < value
    if op == FilterOperator.BETWEEN:
        return col.between(value[0], value[1])
    if op == FilterOperator.IN:
        return col.in_(list(value))
    return col.not_in(list(value))


def _apply_where(stmt: Select[Any], options: FetchOptions) -> Select[Any]:
    for condition in options.filters:
        stmt = stmt.where(filter_clause(condition))
    return stmt


def build_select(
    table_name: str,
    options: FetchOptions,
    limit: int,
    require_order_for_offset: bool = False,
) -> Select[Any]:
    """SELECT for one page of rows.

    Args:
        table_name: Source table (optionally schema-qualified)
        options: Fetch options
        limit: Effective (already clamped) row limit
        require_order_for_offset: Dialect needs ORDER BY to use OFFSET (SQL Server)
    """
    src = source_table(table_name)
    projection = [column(c) for c in options.columns] if options.columns else [literal_column("*")]
    stmt = _apply_where(select(*projection).select_from(src), options)

    for clause in options.order_by:
        col = column(clause.column)
        # Nulls last on every dialect
        stmt = stmt.order_by(case((col.is_(None), 1), else_=0))
        stmt = stmt.order_by(col.desc() if clause.direction == SortDirection.DESC else col.asc())

    if options.offset and not options.order_by and require_order_for_offset:
        stmt = stmt.order_by(text("(SELECT NULL)"))

    stmt = stmt.limit(limit)
    if options.offset:
        stmt = stmt.offset(options.offset)
    return stmt


def build_count(table_name: str, options: FetchOptions) -> Select[Any]:
    """SELECT COUNT(*) of rows matching the filters."""
    stmt = select(func.count()).select_from(source_table(table_name))
    return _apply_where(stmt, options)
