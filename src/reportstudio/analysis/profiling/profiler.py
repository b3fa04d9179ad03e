"""Column and dataset profiling over sampled rows.

Computes per column:
- Null count / percentage and completeness score
- Distinct and duplicate counts
- Min/max (numeric and date columns)
- Mean, median, standard deviation and quartiles (numeric columns)
- IQR outlier flags (numeric columns)
- Top values and sample values
- Quality issues (missing, duplicate, invalid, outlier)

Counts, top values and duplicate rows are computed in DuckDB over the
registered records; numeric statistics and outliers come from the
statistics functions. Profiling reads at most ``sample_size`` leading rows.
When the input is larger, every statistic is an estimate over that sample
and the profile is flagged with ``is_sample``.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import duckdb

from reportstudio.analysis.profiling.models import (
    ColumnProfile,
    DataProfile,
    IssueType,
    NumericStats,
    QualityIssue,
    ValueCount,
)
from reportstudio.analysis.statistics import functions as stats
from reportstudio.analysis.typing.config import TypeInferenceConfig, load_type_inference_config
from reportstudio.analysis.typing.inference import (
    as_records,
    detect_primary_keys,
    detect_schema,
    is_boolean,
    is_null,
    parse_date,
    reconcile_schema,
)
from reportstudio.core.config import get_settings
from reportstudio.core.logging import get_logger
from reportstudio.core.models import ColumnDescriptor, ColumnType, IssueSeverity
from reportstudio.core.relations import (
    RecordRelation,
    blank_sql,
    register_records,
    relation_cursor,
)
from reportstudio.sources.base import ordered_columns
from reportstudio.sources.filtering import to_number

logger = get_logger(__name__)

TOP_VALUES = 10
SAMPLE_VALUES = 5

# Column uniqueness below which a duplicate issue is raised
LOW_UNIQUENESS = 50.0
VERY_LOW_UNIQUENESS = 20.0
MIN_VALUES_FOR_UNIQUENESS = 10


def count_duplicate_rows(
    records: Sequence[dict[str, Any]], cursor: duckdb.DuckDBPyConnection | None = None
) -> int:
    """Rows identical to an earlier row."""
    columns = ordered_columns(records)
    if not columns:
        return max(len(records) - 1, 0)
    with relation_cursor(cursor=cursor) as cur:
        with register_records(cur, records, columns) as rel:
            keys = ", ".join(rel.ref(c) for c in columns)
            row = cur.execute(
                f"""
                SELECT COALESCE(SUM(n - 1), 0)
                FROM (SELECT COUNT(*) AS n FROM {rel.name} GROUP BY {keys})
                """
            ).fetchone()
    return int(row[0]) if row else 0


def _column_counts(
    cursor: duckdb.DuckDBPyConnection, rel: RecordRelation, column: str
) -> tuple[int, int, int]:
    """(total, non-null, distinct non-null) for one column."""
    value = rel.ref(column)
    row = cursor.execute(
        f"""
        SELECT
            COUNT(*) AS total_count,
            COUNT(CASE WHEN NOT {blank_sql(value)} THEN 1 END) AS non_null_count,
            COUNT(DISTINCT CASE WHEN NOT {blank_sql(value)} THEN {value} END) AS distinct_count
        FROM {rel.name}
        """
    ).fetchone()
    if not row:
        return 0, 0, 0
    return int(row[0]), int(row[1]), int(row[2])


def _top_values(
    cursor: duckdb.DuckDBPyConnection, rel: RecordRelation, column: str
) -> list[tuple[int, int]]:
    """(first row id, count) of the most frequent non-null values, ties by first appearance."""
    value = rel.ref(column)
    rows = cursor.execute(
        f"""
        SELECT MIN({rel.row_id()}) AS first_row, COUNT(*) AS count
        FROM {rel.name}
        WHERE NOT {blank_sql(value)}
        GROUP BY {value}
        ORDER BY count DESC, first_row
        LIMIT {TOP_VALUES}
        """
    ).fetchall()
    return [(int(first), int(count)) for first, count in rows]


def _is_valid(value: Any, column_type: ColumnType, config: TypeInferenceConfig) -> bool:
    if column_type == ColumnType.NUMBER:
        return to_number(value) is not None
    if column_type == ColumnType.BOOLEAN:
        return is_boolean(value, config)
    if column_type == ColumnType.DATE:
        return parse_date(value, config) is not None
    return True


def _hashable(value: Any) -> Any:
    if isinstance(value, dict | list):
        return json.dumps(value, sort_keys=True, default=str)
    return value


def _missing_issue(
    column: str, null_count: int, null_pct: float, config: TypeInferenceConfig
) -> QualityIssue | None:
    if null_pct > config.missing_high * 100:
        severity = IssueSeverity.HIGH
    elif null_pct > config.missing_medium * 100:
        severity = IssueSeverity.MEDIUM
    else:
        return None
    return QualityIssue(
        type=IssueType.MISSING,
        severity=severity,
        column=column,
        message=f"{null_pct:.1f}% of values are missing",
        count=null_count,
        percentage=null_pct,
    )


def profile_column(
    records: Sequence[dict[str, Any]],
    column: ColumnDescriptor,
    config: TypeInferenceConfig | None = None,
    cursor: duckdb.DuckDBPyConnection | None = None,
) -> ColumnProfile:
    """Profile a single column.

    Args:
        records: Profiled rows
        column: Column descriptor (the type decides which statistics apply)
        config: Literal sets and thresholds
        cursor: DuckDB cursor for the count queries

    Returns:
        ColumnProfile
    """
    cfg = config or load_type_inference_config()
    name = column.name

    with relation_cursor(cursor=cursor) as cur:
        with register_records(cur, records, [name]) as rel:
            total, non_null_count, distinct = _column_counts(cur, rel, name)
            top_rows = _top_values(cur, rel, name)

    null_count = total - non_null_count
    null_pct = (null_count / total * 100) if total else 0.0
    distinct_pct = (distinct / non_null_count * 100) if non_null_count else 0.0

    present = [(i, rec.get(name)) for i, rec in enumerate(records) if not is_null(rec.get(name))]
    non_null = [v for _, v in present]

    issues: list[QualityIssue] = []
    missing = _missing_issue(name, null_count, null_pct, cfg)
    if missing:
        issues.append(missing)

    if distinct_pct < LOW_UNIQUENESS and non_null_count > MIN_VALUES_FOR_UNIQUENESS:
        issues.append(
            QualityIssue(
                type=IssueType.DUPLICATE,
                severity=(
                    IssueSeverity.HIGH
                    if distinct_pct < VERY_LOW_UNIQUENESS
                    else IssueSeverity.MEDIUM
                ),
                column=name,
                message=f"Only {distinct_pct:.1f}% of values are unique",
                count=non_null_count - distinct,
                percentage=100 - distinct_pct,
            )
        )

    invalid = [v for v in non_null if not _is_valid(v, column.type, cfg)]
    if invalid:
        invalid_pct = len(invalid) / len(non_null) * 100
        issues.append(
            QualityIssue(
                type=IssueType.INVALID,
                severity=IssueSeverity.HIGH if invalid_pct > 20 else IssueSeverity.MEDIUM,
                column=name,
                message=f"{len(invalid)} value(s) are not valid {column.type.value} values",
                count=len(invalid),
                percentage=invalid_pct,
            )
        )

    min_value: Any = None
    max_value: Any = None
    numeric_stats: NumericStats | None = None
    outlier_indices: list[int] = []

    if column.type == ColumnType.NUMBER:
        numbers = [(i, to_number(v)) for i, v in present]
        parsed = [(i, n) for i, n in numbers if n is not None]
        if parsed:
            positions = [i for i, _ in parsed]
            nums = [n for _, n in parsed]
            q = stats.quartiles(nums)
            numeric_stats = NumericStats(
                min_value=min(nums),
                max_value=max(nums),
                mean=stats.mean(nums),
                median=q["q2"],
                stddev=stats.standard_deviation(nums),
                q1=q["q1"],
                q3=q["q3"],
            )
            min_value, max_value = numeric_stats.min_value, numeric_stats.max_value
            outliers = stats.detect_outliers(nums)
            outlier_indices = [positions[i] for i in outliers["indices"]]
            if outlier_indices:
                issues.append(
                    QualityIssue(
                        type=IssueType.OUTLIER,
                        severity=IssueSeverity.LOW,
                        column=name,
                        message=f"{len(outlier_indices)} potential outlier(s) detected",
                        count=len(outlier_indices),
                        percentage=len(outlier_indices) / len(nums) * 100,
                    )
                )
    elif column.type == ColumnType.DATE:
        dates = [d for d in (parse_date(v, cfg) for v in non_null) if d is not None]
        if dates:
            min_value, max_value = min(dates).isoformat(), max(dates).isoformat()

    top = [
        ValueCount(
            value=_hashable(records[first].get(name)),
            count=count,
            percentage=count / non_null_count * 100,
        )
        for first, count in top_rows
    ]

    return ColumnProfile(
        name=name,
        type=column.type,
        nullable=column.nullable,
        total_count=total,
        null_count=null_count,
        null_percentage=null_pct,
        distinct_count=distinct,
        distinct_percentage=distinct_pct,
        duplicate_count=non_null_count - distinct,
        invalid_count=len(invalid),
        min_value=min_value,
        max_value=max_value,
        numeric_stats=numeric_stats,
        outlier_indices=outlier_indices,
        top_values=top,
        sample_values=non_null[:SAMPLE_VALUES],
        completeness_score=(100.0 - null_pct) if total else 0.0,
        issues=issues,
    )


def profile_data(
    rows: Sequence[dict[str, Any]] | Sequence[Sequence[Any]],
    schema: list[ColumnDescriptor] | None = None,
    columns: Sequence[str] | None = None,
    declared_schema: list[ColumnDescriptor] | None = None,
    sample_size: int | None = None,
    config: TypeInferenceConfig | None = None,
    cursor: duckdb.DuckDBPyConnection | None = None,
) -> DataProfile:
    """Profile a dataset sample.

    Args:
        rows: Records, or positional rows together with ``columns``
        schema: Column schema; inferred from the profiled rows when omitted
        columns: Column names for positional rows
        declared_schema: User-declared schema; conflicts become warnings
        sample_size: Maximum rows profiled (default from settings, 0 = all)
        config: Literal sets and thresholds
        cursor: DuckDB cursor (a private in-memory database otherwise)

    Returns:
        DataProfile
    """
    cfg = config or load_type_inference_config()
    if sample_size is None:
        sample_size = get_settings().profile_sample_size

    names, records = as_records(rows, columns or (schema and [c.name for c in schema]) or None)
    total = len(records)
    is_sample = bool(sample_size) and total > sample_size
    profiled = records[:sample_size] if is_sample else records

    effective = schema if schema is not None else detect_schema(profiled, names, cfg)
    warnings: list[str] = []
    if declared_schema:
        reconciliation = reconcile_schema(effective, declared_schema)
        effective = reconciliation.columns
        warnings = reconciliation.warnings

    if not profiled:
        return DataProfile(
            row_count=0,
            profiled_rows=0,
            schema_columns=effective,
            columns=[profile_column([], col, cfg, cursor) for col in effective],
            schema_warnings=warnings,
        )

    with relation_cursor(cursor=cursor) as cur:
        column_profiles = [profile_column(profiled, col, cfg, cur) for col in effective]
        duplicate_rows = count_duplicate_rows(profiled, cur)

    issues = [issue for cp in column_profiles for issue in cp.issues]
    if duplicate_rows:
        ratio = duplicate_rows / len(profiled)
        issues.append(
            QualityIssue(
                type=IssueType.DUPLICATE,
                severity=IssueSeverity.HIGH if ratio > 0.1 else IssueSeverity.MEDIUM,
                message=f"{duplicate_rows} duplicate rows found",
                count=duplicate_rows,
                percentage=ratio * 100,
            )
        )

    logger.debug(
        "data_profiled",
        rows=total,
        profiled_rows=len(profiled),
        columns=len(column_profiles),
        issues=len(issues),
    )

    return DataProfile(
        row_count=total,
        profiled_rows=len(profiled),
        is_sample=is_sample,
        sample_size=sample_size if is_sample else None,
        schema_columns=effective,
        columns=column_profiles,
        duplicate_rows=duplicate_rows,
        primary_key_candidates=detect_primary_keys(profiled, [c.name for c in effective], cfg),
        issues=issues,
        schema_warnings=warnings,
    )
