"""Named dispatch for the statistical function library.

``run_function(name, data, options)`` validates the payload against the
function's model and calls it. Unknown names and malformed payloads raise
ValidationError subclasses describing the expected shape.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat
from pydantic import ValidationError as PydanticValidationError

from reportstudio.analysis.statistics import functions as fn
from reportstudio.core.errors import UnknownFunctionError, ValidationError
from reportstudio.core.logging import get_logger
from reportstudio.sources.base import pydantic_errors

logger = get_logger(__name__)

Vector = list[FiniteFloat]
Matrix = list[list[FiniteFloat]]


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class VectorPayload(_Payload):
    data: Vector = Field(min_length=1)


class SampleVectorPayload(VectorPayload):
    sample: bool = False


class PercentilePayload(VectorPayload):
    p: float = Field(ge=0, le=100)


class OutlierPayload(VectorPayload):
    multiplier: float = Field(default=1.5, gt=0)


class MovingAveragePayload(VectorPayload):
    window: int = Field(default=3, ge=1)


class TrendPayload(VectorPayload):
    x: Vector | None = None


class ColumnsPayload(_Payload):
    data: Matrix = Field(min_length=1, description="list of equal-length numeric columns")


class CovariancePayload(ColumnsPayload):
    sample: bool = True


class TTestPayload(_Payload):
    data: list[Vector] = Field(min_length=2, max_length=2, description="[sample_a, sample_b]")
    equal_var: bool = False
    alpha: float = Field(default=0.05, gt=0, lt=1)


class ChiSquarePayload(_Payload):
    data: Matrix = Field(min_length=1, description="contingency table of observed counts")
    alpha: float = Field(default=0.05, gt=0, lt=1)


@dataclass(frozen=True)
class FunctionSpec:
    """A dispatchable function."""

    name: str
    payload: type[_Payload]
    call: Callable[[Any], Any]
    description: str

    def expected_shape(self) -> dict[str, Any]:
        schema = self.payload.model_json_schema()
        return {"properties": schema.get("properties", {}), "required": schema.get("required", [])}


_FUNCTIONS: dict[str, FunctionSpec] = {
    spec.name: spec
    for spec in [
        FunctionSpec("mean", VectorPayload, lambda p: fn.mean(p.data), "Arithmetic mean"),
        FunctionSpec("median", VectorPayload, lambda p: fn.median(p.data), "Median"),
        FunctionSpec(
            "variance",
            SampleVectorPayload,
            lambda p: fn.variance(p.data, sample=p.sample),
            "Population (or sample) variance",
        ),
        FunctionSpec(
            "standard_deviation",
            SampleVectorPayload,
            lambda p: fn.standard_deviation(p.data, sample=p.sample),
            "Population (or sample) standard deviation",
        ),
        FunctionSpec(
            "percentile",
            PercentilePayload,
            lambda p: fn.percentile(p.data, p.p),
            "Percentile with linear interpolation, p in [0, 100]",
        ),
        FunctionSpec("quartiles", VectorPayload, lambda p: fn.quartiles(p.data), "Q1, Q2, Q3"),
        FunctionSpec(
            "interquartile_range",
            VectorPayload,
            lambda p: fn.interquartile_range(p.data),
            "Q3 - Q1",
        ),
        FunctionSpec(
            "detect_outliers",
            OutlierPayload,
            lambda p: fn.detect_outliers(p.data, p.multiplier),
            "IQR outlier rule",
        ),
        FunctionSpec(
            "z_score_normalize",
            VectorPayload,
            lambda p: fn.z_score_normalize(p.data),
            "(x - mean) / stddev, zeros for constant input",
        ),
        FunctionSpec(
            "coefficient_of_variation",
            VectorPayload,
            lambda p: fn.coefficient_of_variation(p.data),
            "stddev / mean, 0 when mean is 0",
        ),
        FunctionSpec(
            "standard_error",
            VectorPayload,
            lambda p: fn.standard_error(p.data),
            "Standard error of the mean, 0 when n <= 1",
        ),
        FunctionSpec(
            "descriptive_statistics",
            VectorPayload,
            lambda p: fn.descriptive_statistics(p.data),
            "Summary statistics",
        ),
        FunctionSpec(
            "correlation_matrix",
            ColumnsPayload,
            lambda p: fn.correlation_matrix(p.data),
            "Pairwise Pearson correlation of equal-length columns",
        ),
        FunctionSpec(
            "covariance",
            CovariancePayload,
            lambda p: fn.covariance(p.data, sample=p.sample),
            "Covariance matrix of equal-length columns",
        ),
        FunctionSpec(
            "t_test",
            TTestPayload,
            lambda p: fn.t_test(p.data[0], p.data[1], equal_var=p.equal_var, alpha=p.alpha),
            "Two-sample t-test",
        ),
        FunctionSpec(
            "chi_square_test",
            ChiSquarePayload,
            lambda p: fn.chi_square_test(p.data, alpha=p.alpha),
            "Chi-square test of independence",
        ),
        FunctionSpec(
            "moving_average",
            MovingAveragePayload,
            lambda p: fn.moving_average(p.data, p.window),
            "Simple moving average",
        ),
        FunctionSpec(
            "linear_trend",
            TrendPayload,
            lambda p: fn.linear_trend(p.data, p.x),
            "Least-squares trend with direction",
        ),
    ]
}


def list_functions() -> list[dict[str, Any]]:
    """Available functions with their payload shapes."""
    return [
        {"name": spec.name, "description": spec.description, "payload": spec.expected_shape()}
        for spec in sorted(_FUNCTIONS.values(), key=lambda s: s.name)
    ]


def get_function(name: str) -> FunctionSpec:
    spec = _FUNCTIONS.get(name)
    if spec is None:
        raise UnknownFunctionError(name, sorted(_FUNCTIONS))
    return spec


def run_function(name: str, data: Any, options: dict[str, Any] | None = None) -> Any:
    """Validate the payload and invoke a statistical function by name.

    Args:
        name: Function name (see list_functions)
        data: Vector, matrix or list of samples depending on the function
        options: Function options (p, window, alpha, ...)

    Returns:
        Scalar, list, matrix or dict result

    Raises:
        UnknownFunctionError: Unrecognized name
        ValidationError: Payload does not match the expected shape
    """
    spec = get_function(name)
    try:
        payload = spec.payload.model_validate({"data": data, **(options or {})})
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid payload for '{name}'",
            expected=spec.expected_shape(),
            errors=pydantic_errors(e),
        ) from e

    result = spec.call(payload)
    logger.debug("statistical_function_run", function=name)
    return result
