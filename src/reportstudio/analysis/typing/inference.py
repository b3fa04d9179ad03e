"""Schema detection from sampled rows.

Type inference is value-based: a column gets the most specific type that
fits 100% of its non-null sample values, tried in the order
number, boolean, date. Any non-conforming value demotes the column to string.
A column with no non-null values is unknown.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel

from reportstudio.analysis.typing.config import TypeInferenceConfig, load_type_inference_config
from reportstudio.core.errors import SchemaMismatchError
from reportstudio.core.logging import get_logger
from reportstudio.core.models import ColumnDescriptor, ColumnType
from reportstudio.sources.base import ordered_columns
from reportstudio.sources.filtering import to_number

logger = get_logger(__name__)

_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_GROUPED_NUMBER = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")

_default_config: TypeInferenceConfig | None = None


def _config(config: TypeInferenceConfig | None) -> TypeInferenceConfig:
    global _default_config
    if config is not None:
        return config
    if _default_config is None:
        _default_config = load_type_inference_config()
    return _default_config


def is_null(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip() == ""


def is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int | float):
        return math.isfinite(value)
    if isinstance(value, str):
        text = value.strip()
        return bool(_NUMBER.match(text) or _GROUPED_NUMBER.match(text))
    return False


def is_boolean(value: Any, config: TypeInferenceConfig) -> bool:
    if isinstance(value, bool):
        return True
    if isinstance(value, str):
        return value.strip().lower() in config.boolean_literals
    return False


def parse_date(value: Any, config: TypeInferenceConfig | None = None) -> datetime | None:
    """Parse a value under any accepted date format."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None
    text = value.strip()
    for fmt in _config(config).date_formats:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def infer_column_type(
    values: Sequence[Any], config: TypeInferenceConfig | None = None
) -> ColumnType:
    """Infer the type of one column from its sample values."""
    cfg = _config(config)
    non_null = [v for v in values if not is_null(v)]
    if not non_null:
        return ColumnType.UNKNOWN
    if all(is_number(v) for v in non_null):
        return ColumnType.NUMBER
    if all(is_boolean(v, cfg) for v in non_null):
        return ColumnType.BOOLEAN
    if all(parse_date(v, cfg) is not None for v in non_null):
        return ColumnType.DATE
    return ColumnType.STRING


def as_records(
    rows: Sequence[dict[str, Any]] | Sequence[Sequence[Any]],
    columns: Sequence[str] | None = None,
) -> tuple[list[str], list[dict[str, Any]]]:
    """Normalize dict rows or positional rows (with column names) to records."""
    if not rows:
        return list(columns or []), []
    if isinstance(rows[0], dict):
        records = [dict(r) for r in rows]  # type: ignore[arg-type]
        cols = list(columns) if columns else ordered_columns(records)
        return cols, records
    if columns is None:
        raise ValueError("column names are required for positional rows")
    cols = list(columns)
    return cols, [dict(zip(cols, row, strict=False)) for row in rows]


def detect_schema(
    sample_rows: Sequence[dict[str, Any]] | Sequence[Sequence[Any]],
    sample_columns: Sequence[str] | None = None,
    config: TypeInferenceConfig | None = None,
) -> list[ColumnDescriptor]:
    """Infer an ordered column schema from a data sample.

    Args:
        sample_rows: Records, or positional rows together with ``sample_columns``
        sample_columns: Column names (order of the returned schema)
        config: Inference literals; defaults to the bundled YAML

    Returns:
        One ColumnDescriptor per column, in column order
    """
    cfg = _config(config)
    columns, records = as_records(sample_rows, sample_columns)
    schema = []
    for name in columns:
        values = [rec.get(name) for rec in records]
        schema.append(
            ColumnDescriptor(
                name=name,
                type=infer_column_type(values, cfg),
                nullable=not values or any(is_null(v) for v in values),
            )
        )
    logger.debug("schema_detected", columns=len(schema), rows=len(records))
    return schema


def detect_primary_keys(
    sample_rows: Sequence[dict[str, Any]] | Sequence[Sequence[Any]],
    sample_columns: Sequence[str] | None = None,
    config: TypeInferenceConfig | None = None,
) -> list[str]:
    """Columns whose values are nearly all present and nearly all distinct."""
    cfg = _config(config)
    columns, records = as_records(sample_rows, sample_columns)
    total = len(records)
    if total == 0:
        return []

    candidates = []
    for name in columns:
        non_null = [rec.get(name) for rec in records if not is_null(rec.get(name))]
        distinct = len({str(v) for v in non_null})
        if (
            len(non_null) / total >= cfg.pk_min_non_null_ratio
            and distinct / total >= cfg.pk_min_unique_ratio
        ):
            candidates.append(name)
    return candidates


class SchemaMismatch(BaseModel):
    """A declared column type the sample contradicts."""

    column: str
    declared_type: ColumnType | None
    inferred_type: ColumnType | None
    message: str


class SchemaReconciliation(BaseModel):
    """Effective schema after applying a declared schema."""

    columns: list[ColumnDescriptor]
    mismatches: list[SchemaMismatch]

    @property
    def warnings(self) -> list[str]:
        return [m.message for m in self.mismatches]


def _compatible(declared: ColumnType, inferred: ColumnType) -> bool:
    return (
        declared == inferred
        or inferred == ColumnType.UNKNOWN
        or declared in (ColumnType.STRING, ColumnType.UNKNOWN)
    )


def reconcile_schema(
    inferred: list[ColumnDescriptor],
    declared: list[ColumnDescriptor] | None,
    strict: bool = False,
) -> SchemaReconciliation:
    """Apply a user-declared schema on top of the inferred one.

    Declared types win where the sample is compatible with them. Where the
    sample contradicts a declared type the inferred type is kept and a
    mismatch is reported. Declared columns absent from the data are reported
    too.

    Raises:
        SchemaMismatchError: Only when ``strict`` and mismatches exist
    """
    if not declared:
        return SchemaReconciliation(columns=list(inferred), mismatches=[])

    by_name = {c.name: c for c in declared}
    columns: list[ColumnDescriptor] = []
    mismatches: list[SchemaMismatch] = []

    for col in inferred:
        decl = by_name.get(col.name)
        if decl is None:
            columns.append(col)
        elif _compatible(decl.type, col.type):
            columns.append(decl)
        else:
            columns.append(col)
            mismatches.append(
                SchemaMismatch(
                    column=col.name,
                    declared_type=decl.type,
                    inferred_type=col.type,
                    message=(
                        f"Column '{col.name}' declared as {decl.type.value} "
                        f"but sample values are {col.type.value}"
                    ),
                )
            )

    inferred_names = {c.name for c in inferred}
    for decl in declared:
        if decl.name not in inferred_names:
            mismatches.append(
                SchemaMismatch(
                    column=decl.name,
                    declared_type=decl.type,
                    inferred_type=None,
                    message=f"Declared column '{decl.name}' is not present in the data",
                )
            )

    if mismatches:
        logger.info("schema_mismatch", count=len(mismatches))
        if strict:
            raise SchemaMismatchError(
                f"{len(mismatches)} declared column(s) conflict with the data",
                {"mismatches": [m.model_dump(mode="json") for m in mismatches]},
            )
    return SchemaReconciliation(columns=columns, mismatches=mismatches)


def coerce_value(
    value: Any, column_type: ColumnType, config: TypeInferenceConfig | None = None
) -> Any:
    """Convert a raw cell to the Python value of its column type.

    Values that do not conform are returned unchanged; nulls become None.
    """
    if is_null(value):
        return None
    if column_type == ColumnType.NUMBER:
        if isinstance(value, int | float) and not isinstance(value, bool):
            return value
        number = to_number(value)
        if number is None:
            return value
        return int(number) if number.is_integer() and "." not in str(value) else number
    if column_type == ColumnType.BOOLEAN:
        cfg = _config(config)
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in cfg.true_values:
            return True
        if text in cfg.false_values:
            return False
        return value
    if column_type == ColumnType.DATE:
        parsed = parse_date(value, _config(config))
        if parsed is None:
            return value
        if parsed.hour == parsed.minute == parsed.second == parsed.microsecond == 0:
            return parsed.date().isoformat()
        return parsed.isoformat()
    return value


def coerce_records(
    records: list[dict[str, Any]],
    schema: list[ColumnDescriptor],
    config: TypeInferenceConfig | None = None,
) -> list[dict[str, Any]]:
    """Typed copies of records according to ``schema``."""
    cfg = _config(config)
    types = {c.name: c.type for c in schema}
    return [
        {k: coerce_value(v, types.get(k, ColumnType.STRING), cfg) for k, v in rec.items()}
        for rec in records
    ]
