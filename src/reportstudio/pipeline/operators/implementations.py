"""Operator implementations over lists of records.

Every operator takes the step's input tables (one for most operators, two
for join, one or more for union) plus its validated configuration and
returns a new list of records. Inputs are never mutated.

Filter, sort, distinct, aggregate and join are relational: they register
their inputs with DuckDB (see ``reportstudio.core.relations``) and run as
SQL. Grouping and join keys compare cell text; aggregates read cells as
numbers where they parse. The remaining operators work row by row.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import duckdb
from scipy import stats as sps

from reportstudio.analysis.statistics import functions as stats
from reportstudio.analysis.typing.config import TypeInferenceConfig
from reportstudio.analysis.typing.inference import parse_date
from reportstudio.core.relations import (
    RecordRelation,
    blank_sql,
    fetch_ids,
    number_sql,
    register_records,
    relation_cursor,
)
from reportstudio.pipeline.operators.configs import (
    AggregateConfig,
    AggregateFunction,
    Aggregation,
    ConcatenateConfig,
    DerivedColumnConfig,
    DistinctConfig,
    FillNullsConfig,
    FillStrategy,
    FilterConfig,
    FormatDateConfig,
    JoinConfig,
    LimitConfig,
    OffsetConfig,
    OperatorConfig,
    ParseNumberConfig,
    RemoveColumnsConfig,
    RenameColumnsConfig,
    SelectColumnsConfig,
    SortConfig,
    StatisticalColumnFunction,
    UnionConfig,
)
from reportstudio.sources.base import ordered_columns
from reportstudio.sources.filtering import select_rows, to_number

Records = list[dict[str, Any]]
Cursor = duckdb.DuckDBPyConnection | None


class OperatorError(ValueError):
    """An operator could not be applied to its input."""


def _is_null(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _require_columns(records: Records, columns: list[str], operator: str) -> None:
    if not records:
        return
    known = ordered_columns(records)
    missing = [c for c in columns if c not in known]
    if missing:
        raise OperatorError(f"{operator}: unknown column(s) {missing}; available: {known}")


def _numbers(records: Records, column: str) -> list[float]:
    return [n for n in (to_number(r.get(column)) for r in records) if n is not None]


# === Row operators ===


def filter_rows(inputs: list[Records], config: FilterConfig, cursor: Cursor = None) -> Records:
    return select_rows(inputs[0], filters=config.conditions, match=config.match, cursor=cursor)


def sort_rows(inputs: list[Records], config: SortConfig, cursor: Cursor = None) -> Records:
    _require_columns(inputs[0], [c.column for c in config.order_by], "sort")
    return select_rows(inputs[0], order_by=config.order_by, cursor=cursor)


def limit_rows(inputs: list[Records], config: LimitConfig) -> Records:
    return list(inputs[0][config.offset : config.offset + config.count])


def offset_rows(inputs: list[Records], config: OffsetConfig) -> Records:
    return list(inputs[0][config.count :])


def distinct_rows(inputs: list[Records], config: DistinctConfig, cursor: Cursor = None) -> Records:
    """First row of every distinct key (all columns when none are named)."""
    records = inputs[0]
    _require_columns(records, config.columns, "distinct")
    columns = config.columns or ordered_columns(records)
    if not columns:
        return records[:1]
    with relation_cursor(cursor=cursor) as cur:
        with register_records(cur, records, columns) as rel:
            keys = ", ".join(rel.ref(c) for c in columns)
            ids = fetch_ids(
                cur,
                f"SELECT MIN({rel.row_id()}) AS first_row FROM {rel.name} "
                f"GROUP BY {keys} ORDER BY first_row",
            )
    return [records[i] for i in ids]


# === Column operators ===


def select_columns(inputs: list[Records], config: SelectColumnsConfig) -> Records:
    _require_columns(inputs[0], config.columns, "select_columns")
    return [{c: r.get(c) for c in config.columns} for r in inputs[0]]


def rename_columns(inputs: list[Records], config: RenameColumnsConfig) -> Records:
    _require_columns(inputs[0], list(config.mappings), "rename_columns")
    return [{config.mappings.get(k, k): v for k, v in r.items()} for r in inputs[0]]


def remove_columns(inputs: list[Records], config: RemoveColumnsConfig) -> Records:
    dropped = set(config.columns)
    return [{k: v for k, v in r.items() if k not in dropped} for r in inputs[0]]


def _statistical_column(records: Records, config: DerivedColumnConfig) -> list[Any]:
    assert config.source_column is not None
    raw = [to_number(r.get(config.source_column)) for r in records]
    present = [n for n in raw if n is not None]

    if config.function == StatisticalColumnFunction.CUMULATIVE_SUM:
        total = 0.0
        out = []
        for n in raw:
            total += n or 0.0
            out.append(total)
        return out

    if not present:
        return [config.default] * len(records)
    if config.function == StatisticalColumnFunction.Z_SCORE:
        scores = iter(stats.z_score_normalize(present))
        return [next(scores) if n is not None else config.default for n in raw]
    # Percentage of values less than or equal to the cell
    return [
        float(sps.percentileofscore(present, n, kind="weak")) if n is not None else config.default
        for n in raw
    ]


def derived_column(inputs: list[Records], config: DerivedColumnConfig) -> Records:
    records = inputs[0]
    if config.function is not None:
        _require_columns(records, [config.source_column or ""], "derived_column")
        values = _statistical_column(records, config)
    else:
        expression = config.compiled()
        _require_columns(records, expression.columns, "derived_column")
        values = []
        for r in records:
            result = expression.evaluate(r)
            values.append(config.default if result is None else result)
    return [{**r, config.column: v} for r, v in zip(records, values, strict=True)]


def fill_nulls(inputs: list[Records], config: FillNullsConfig) -> Records:
    records = [dict(r) for r in inputs[0]]
    columns = config.columns or ordered_columns(records)

    for column in columns:
        if config.strategy == FillStrategy.CONSTANT:
            fills = [config.value] * len(records)
        elif config.strategy in (FillStrategy.MEAN, FillStrategy.MEDIAN):
            nums = _numbers(records, column)
            fill = None
            if nums:
                if config.strategy == FillStrategy.MEAN:
                    fill = stats.mean(nums)
                else:
                    fill = stats.median(nums)
            fills = [fill] * len(records)
        else:
            order = range(len(records))
            if config.strategy == FillStrategy.BACKWARD_FILL:
                order = range(len(records) - 1, -1, -1)
            fills = [None] * len(records)
            last = None
            for i in order:
                value = records[i].get(column)
                if not _is_null(value):
                    last = value
                fills[i] = last

        for record, fill in zip(records, fills, strict=True):
            if _is_null(record.get(column)):
                record[column] = fill
    return records


def format_date(inputs: list[Records], config: FormatDateConfig) -> Records:
    """Rewrite parseable dates in ``column``; other cells are kept as they are."""
    _require_columns(inputs[0], [config.column], "format_date")
    type_config = None
    if config.input_formats:
        type_config = TypeInferenceConfig(date_formats=list(config.input_formats))
    result = []
    for record in inputs[0]:
        value = record.get(config.column)
        parsed = None if _is_null(value) else parse_date(value, type_config)
        if parsed is None:
            result.append(record)
            continue
        text = parsed.isoformat() if config.format is None else parsed.strftime(config.format)
        result.append({**record, config.column: text})
    return result


def parse_number(inputs: list[Records], config: ParseNumberConfig) -> Records:
    """Convert numeric text in ``column`` to numbers; other cells are kept."""
    _require_columns(inputs[0], [config.column], "parse_number")
    result = []
    for record in inputs[0]:
        number = to_number(record.get(config.column))
        if number is None:
            result.append(record)
        else:
            result.append({**record, config.column: number})
    return result


def concatenate(inputs: list[Records], config: ConcatenateConfig) -> Records:
    _require_columns(inputs[0], config.columns, "concatenate")
    return [
        {
            **r,
            config.output_column: config.separator.join(
                "" if r.get(c) is None else str(r.get(c)) for c in config.columns
            ),
        }
        for r in inputs[0]
    ]


# === Aggregation ===


def _aggregate_sql(rel: RecordRelation, agg: Aggregation) -> str:
    fn = agg.function
    if agg.column is None:
        return "COUNT(*)"
    value = rel.ref(agg.column)
    number = number_sql(value)
    if fn == AggregateFunction.COUNT:
        return f"COUNT(CASE WHEN NOT {blank_sql(value)} THEN 1 END)"
    if fn == AggregateFunction.COUNT_DISTINCT:
        return f"COUNT(DISTINCT CASE WHEN NOT {blank_sql(value)} THEN {value} END)"
    if fn == AggregateFunction.SUM:
        return f"COALESCE(SUM({number}), 0::DOUBLE)"
    if fn == AggregateFunction.AVG:
        return f"AVG({number})"
    if fn == AggregateFunction.MIN:
        return f"MIN({number})"
    if fn == AggregateFunction.MAX:
        return f"MAX({number})"
    if fn == AggregateFunction.MEDIAN:
        return f"QUANTILE_CONT({number}, 0.5)"
    if fn == AggregateFunction.STDDEV:
        return f"STDDEV_POP({number})"
    assert agg.p is not None
    return f"QUANTILE_CONT({number}, {float(agg.p) / 100!r})"


def aggregate(inputs: list[Records], config: AggregateConfig, cursor: Cursor = None) -> Records:
    """Group in first-appearance order; without ``group_by`` one total row, even for no input."""
    records = inputs[0]
    group_by = list(config.group_by)
    columns = [a.column for a in config.aggregations if a.column is not None]
    _require_columns(records, group_by + columns, "aggregate")

    with relation_cursor(cursor=cursor) as cur:
        with register_records(cur, records, list(dict.fromkeys(group_by + columns))) as rel:
            select = [f"MIN({rel.row_id()}) AS first_row"]
            select += [
                f"{_aggregate_sql(rel, a)} AS a{i}" for i, a in enumerate(config.aggregations)
            ]
            sql = f"SELECT {', '.join(select)} FROM {rel.name}"
            if group_by:
                keys = ", ".join(rel.ref(c) for c in group_by)
                sql += f" GROUP BY {keys} ORDER BY first_row"
            rows = cur.execute(sql).fetchall()

    result = []
    for first, *values in rows:
        out = {c: records[first].get(c) for c in group_by} if group_by else {}
        for agg, value in zip(config.aggregations, values, strict=True):
            out[agg.output_name] = value
        result.append(out)
    return result


# === Multi-input ===


def _join_pairs(
    left: Records,
    right: Records,
    left_keys: list[str],
    right_keys: list[str],
    how: str,
    cursor: Cursor,
) -> list[tuple[int | None, int | None]]:
    """Matched (left, right) row ids; null or blank keys never match."""
    with relation_cursor(cursor=cursor) as cur:
        with (
            register_records(cur, left, left_keys) as lrel,
            register_records(cur, right, right_keys) as rrel,
        ):
            conditions = []
            for lk, rk in zip(left_keys, right_keys, strict=True):
                lv, rv = lrel.ref(lk, "l"), rrel.ref(rk, "r")
                conditions.append(f"{lv} = {rv} AND NOT {blank_sql(lv)}")
            rows = cur.execute(
                f"""
                SELECT l.{lrel.row_id()}, r.{rrel.row_id()}
                FROM {lrel.name} AS l
                {how.upper()} JOIN {rrel.name} AS r ON {" AND ".join(conditions)}
                ORDER BY l.{lrel.row_id()} NULLS LAST, r.{rrel.row_id()}
                """
            ).fetchall()
    return [(None if li is None else int(li), None if ri is None else int(ri)) for li, ri in rows]


def join(inputs: list[Records], config: JoinConfig, cursor: Cursor = None) -> Records:
    """Join in left-row order; unmatched right rows (right/full) come last."""
    if len(inputs) < 2:
        raise OperatorError("join requires two inputs")
    left, right = inputs[0], inputs[1]
    left_keys, right_keys = config.keys
    _require_columns(left, left_keys, "join (left)")
    _require_columns(right, right_keys, "join (right)")

    left_columns = ordered_columns(left)
    right_columns = ordered_columns(right)
    shared_keys = set(config.on or [])

    def right_name(column: str) -> str:
        if column in shared_keys:
            return column
        return f"{column}{config.suffix}" if column in left_columns else column

    def merge(lrow: dict[str, Any] | None, rrow: dict[str, Any] | None) -> dict[str, Any]:
        out = {c: (lrow.get(c) if lrow else None) for c in left_columns}
        for c in right_columns:
            name = right_name(c)
            if name in shared_keys:
                if lrow is None and rrow is not None:
                    out[name] = rrow.get(c)
                continue
            out[name] = rrow.get(c) if rrow else None
        return out

    pairs = _join_pairs(left, right, left_keys, right_keys, config.how, cursor)
    return [
        merge(None if li is None else left[li], None if ri is None else right[ri])
        for li, ri in pairs
    ]


def union(inputs: list[Records], config: UnionConfig, cursor: Cursor = None) -> Records:
    columns = ordered_columns([r for table in inputs for r in table])
    combined = [{c: r.get(c) for c in columns} for table in inputs for r in table]
    if config.distinct:
        return distinct_rows([combined], DistinctConfig(), cursor)
    return combined


OperatorFn = Callable[..., Records]

OPERATORS: dict[str, OperatorFn] = {
    "filter": filter_rows,
    "select_columns": select_columns,
    "rename_columns": rename_columns,
    "remove_columns": remove_columns,
    "derived_column": derived_column,
    "aggregate": aggregate,
    "join": join,
    "union": union,
    "sort": sort_rows,
    "limit": limit_rows,
    "offset": offset_rows,
    "distinct": distinct_rows,
    "fill_nulls": fill_nulls,
    "format_date": format_date,
    "parse_number": parse_number,
    "concatenate": concatenate,
}

# Operators that run as DuckDB queries
RELATIONAL_OPERATORS = frozenset({"filter", "sort", "distinct", "aggregate", "join", "union"})


def apply_operator(
    operator: str, inputs: list[Records], config: OperatorConfig, cursor: Cursor = None
) -> Records:
    """Run a canonical operator on validated config."""
    fn = OPERATORS[operator]
    if operator in RELATIONAL_OPERATORS:
        return fn(inputs, config, cursor=cursor)
    return fn(inputs, config)
