"""Operator configuration variants.

Each operator has one configuration model. ``validate_config`` resolves the
operator name (including legacy aliases) and validates the raw config dict
against its model before any step executes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from reportstudio.core.errors import ValidationError
from reportstudio.pipeline.operators.expressions import ArithmeticExpression, ExpressionError
from reportstudio.sources.base import FilterCondition, OrderByClause, pydantic_errors


class OperatorConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class FilterConfig(OperatorConfig):
    """Keep rows matching all (or any) conditions.

    Shorthand ``{"column", "operator", "value"}`` is accepted for one condition.
    """

    conditions: list[FilterCondition] = Field(min_length=1)
    match: Literal["all", "any"] = "all"

    @model_validator(mode="before")
    @classmethod
    def _single_condition(cls, data: Any) -> Any:
        if isinstance(data, dict) and "conditions" not in data and "column" in data:
            data = dict(data)
            condition = {k: data.pop(k) for k in ("column", "operator", "value") if k in data}
            data["conditions"] = [condition]
        return data


class SelectColumnsConfig(OperatorConfig):
    columns: list[str] = Field(min_length=1)


class RenameColumnsConfig(OperatorConfig):
    mappings: dict[str, str] = Field(min_length=1)


class RemoveColumnsConfig(OperatorConfig):
    columns: list[str] = Field(min_length=1)


class StatisticalColumnFunction(str, Enum):
    Z_SCORE = "z_score"
    PERCENTILE_RANK = "percentile_rank"
    CUMULATIVE_SUM = "cumulative_sum"


class DerivedColumnConfig(OperatorConfig):
    """New column from an arithmetic expression or a statistical function."""

    column: str = Field(min_length=1)
    expression: str | None = None
    function: StatisticalColumnFunction | None = None
    source_column: str | None = None
    default: Any = None

    @model_validator(mode="after")
    def _check_source(self) -> DerivedColumnConfig:
        if (self.expression is None) == (self.function is None):
            raise ValueError("exactly one of 'expression' or 'function' is required")
        if self.function is not None and not self.source_column:
            raise ValueError(f"'{self.function.value}' requires 'source_column'")
        if self.expression is not None:
            try:
                ArithmeticExpression(self.expression)
            except ExpressionError as e:
                raise ValueError(str(e)) from e
        return self

    def compiled(self) -> ArithmeticExpression:
        assert self.expression is not None
        return ArithmeticExpression(self.expression)


class AggregateFunction(str, Enum):
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    COUNT = "count"
    COUNT_DISTINCT = "count_distinct"
    MEDIAN = "median"
    STDDEV = "stddev"
    PERCENTILE = "percentile"


class Aggregation(OperatorConfig):
    column: str | None = None
    function: AggregateFunction
    alias: str | None = None
    p: float | None = Field(default=None, ge=0, le=100)

    @model_validator(mode="before")
    @classmethod
    def _average_alias(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("function") == "average":
            data = {**data, "function": "avg"}
        return data

    @model_validator(mode="after")
    def _check(self) -> Aggregation:
        if self.column is None and self.function != AggregateFunction.COUNT:
            raise ValueError(f"'{self.function.value}' requires 'column'")
        if self.function == AggregateFunction.PERCENTILE and self.p is None:
            raise ValueError("'percentile' requires 'p' in [0, 100]")
        return self

    @property
    def output_name(self) -> str:
        if self.alias:
            return self.alias
        if self.column is None:
            return self.function.value
        return f"{self.function.value}_{self.column}"


class AggregateConfig(OperatorConfig):
    group_by: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("group_by", "columns")
    )
    aggregations: list[Aggregation] = Field(min_length=1)

    @model_validator(mode="after")
    def _unique_outputs(self) -> AggregateConfig:
        names = list(self.group_by) + [a.output_name for a in self.aggregations]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate output columns: {duplicates}")
        return self


class JoinConfig(OperatorConfig):
    """Join the first two inputs. ``on`` names columns present in both."""

    how: Literal["inner", "left", "right", "full"] = "inner"
    on: list[str] | None = None
    left_on: list[str] | None = None
    right_on: list[str] | None = None
    suffix: str = "_right"

    @model_validator(mode="before")
    @classmethod
    def _scalar_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for key in ("on", "left_on", "right_on"):
                if isinstance(data.get(key), str):
                    data[key] = [data[key]]
        return data

    @model_validator(mode="after")
    def _check_keys(self) -> JoinConfig:
        if self.on:
            if self.left_on or self.right_on:
                raise ValueError("use either 'on' or 'left_on'/'right_on'")
        elif not self.left_on or not self.right_on or len(self.left_on) != len(self.right_on):
            raise ValueError("'on', or 'left_on' and 'right_on' of equal length, are required")
        return self

    @property
    def keys(self) -> tuple[list[str], list[str]]:
        if self.on:
            return list(self.on), list(self.on)
        assert self.left_on is not None and self.right_on is not None
        return list(self.left_on), list(self.right_on)


class UnionConfig(OperatorConfig):
    distinct: bool = False


class SortConfig(OperatorConfig):
    """Sort rows. Shorthand ``{"column", "direction"}`` is accepted."""

    order_by: list[OrderByClause] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _single_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and "order_by" not in data and "column" in data:
            data = dict(data)
            direction = str(data.pop("direction", "ASC")).upper()
            data["order_by"] = [{"column": data.pop("column"), "direction": direction}]
        return data


class LimitConfig(OperatorConfig):
    count: int = Field(ge=0)
    offset: int = Field(default=0, ge=0)


class OffsetConfig(OperatorConfig):
    count: int = Field(ge=0)


class DistinctConfig(OperatorConfig):
    columns: list[str] = Field(default_factory=list)


class FillStrategy(str, Enum):
    CONSTANT = "constant"
    FORWARD_FILL = "forward_fill"
    BACKWARD_FILL = "backward_fill"
    MEAN = "mean"
    MEDIAN = "median"


class FillNullsConfig(OperatorConfig):
    columns: list[str] = Field(default_factory=list)
    strategy: FillStrategy = FillStrategy.CONSTANT
    value: Any = None

    @model_validator(mode="after")
    def _check_value(self) -> FillNullsConfig:
        if self.strategy == FillStrategy.CONSTANT and self.value is None:
            raise ValueError("'constant' strategy requires 'value'")
        return self


class FormatDateConfig(OperatorConfig):
    """Reformat a date column.

    Without ``format`` dates are written as ISO 8601; otherwise with
    ``strftime``. Cells that do not parse under ``input_formats`` (default:
    the type inference date formats) are left as they are.
    """

    column: str = Field(min_length=1)
    format: str | None = None
    input_formats: list[str] = Field(default_factory=list)


class ParseNumberConfig(OperatorConfig):
    """Convert a text column to numbers; non-numeric cells are kept."""

    column: str = Field(min_length=1)


class ConcatenateConfig(OperatorConfig):
    columns: list[str] = Field(min_length=1)
    separator: str = ""
    output_column: str = Field(
        min_length=1, validation_alias=AliasChoices("output_column", "outputColumn")
    )


OPERATOR_CONFIGS: dict[str, type[OperatorConfig]] = {
    "filter": FilterConfig,
    "select_columns": SelectColumnsConfig,
    "rename_columns": RenameColumnsConfig,
    "remove_columns": RemoveColumnsConfig,
    "derived_column": DerivedColumnConfig,
    "aggregate": AggregateConfig,
    "join": JoinConfig,
    "union": UnionConfig,
    "sort": SortConfig,
    "limit": LimitConfig,
    "offset": OffsetConfig,
    "distinct": DistinctConfig,
    "fill_nulls": FillNullsConfig,
    "format_date": FormatDateConfig,
    "parse_number": ParseNumberConfig,
    "concatenate": ConcatenateConfig,
}

# Alternate names accepted for stored steps
OPERATOR_ALIASES: dict[str, str] = {
    "where": "filter",
    "group_by": "aggregate",
    "add_column": "derived_column",
    "calculate": "derived_column",
    "remove_duplicates": "distinct",
    "merge": "join",
    "concat": "concatenate",
}

# Join variants whose name carries the join type
JOIN_ALIASES: dict[str, str] = {
    "inner_join": "inner",
    "left_join": "left",
    "right_join": "right",
    "full_join": "full",
}

MULTI_INPUT_OPERATORS = frozenset({"join", "union"})


def canonical_operator(name: str) -> str:
    """Resolve an operator name or alias to its canonical name.

    Raises:
        ValidationError: Unknown operator
    """
    key = name.strip().lower()
    if key in JOIN_ALIASES:
        return "join"
    key = OPERATOR_ALIASES.get(key, key)
    if key not in OPERATOR_CONFIGS:
        raise ValidationError(
            f"Unsupported operator: {name!r}",
            expected={"operator": sorted(OPERATOR_CONFIGS)},
        )
    return key


def config_shape(operator: str) -> dict[str, Any]:
    schema = OPERATOR_CONFIGS[operator].model_json_schema()
    return {"properties": schema.get("properties", {}), "required": schema.get("required", [])}


def validate_config(operator: str, config: dict[str, Any] | None) -> tuple[str, OperatorConfig]:
    """Validate a raw step configuration.

    Returns:
        (canonical operator name, validated config)

    Raises:
        ValidationError: Unknown operator or config not matching its model
    """
    canonical = canonical_operator(operator)
    raw = dict(config or {})
    join_type = JOIN_ALIASES.get(operator.strip().lower())
    if join_type is not None:
        raw.setdefault("how", join_type)
    try:
        validated = OPERATOR_CONFIGS[canonical].model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid configuration for operator '{canonical}'",
            expected=config_shape(canonical),
            errors=pydantic_errors(e),
        ) from e
    return canonical, validated
