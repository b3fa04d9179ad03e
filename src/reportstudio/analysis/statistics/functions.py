"""Stateless statistical functions.

Every function validates its own input and raises ValidationError on shape
problems. Degenerate numeric cases (zero variance, zero mean, n <= 1)
return 0 instead of NaN or infinity, as documented per function.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any

import numpy as np
from scipy import stats

from reportstudio.core.errors import ValidationError


def _as_array(values: Sequence[float], name: str = "values", min_size: int = 1) -> np.ndarray:
    if values is None or len(values) < min_size:
        raise ValidationError(
            f"'{name}' must contain at least {min_size} numeric value(s)",
            expected={name: f"list[number] with length >= {min_size}"},
        )
    try:
        arr = np.asarray(values, dtype=float)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"'{name}' must contain only numbers", expected={name: "list[number]"}
        ) from e
    if arr.ndim != 1:
        raise ValidationError(f"'{name}' must be a flat list", expected={name: "list[number]"})
    if not np.all(np.isfinite(arr)):
        raise ValidationError(
            f"'{name}' must contain only finite numbers", expected={name: "list[number]"}
        )
    return arr


def _as_matrix(rows: Sequence[Sequence[float]], name: str) -> np.ndarray:
    if not rows or any(len(r) == 0 for r in rows):
        raise ValidationError(
            f"'{name}' must be a non-empty matrix", expected={name: "list[list[number]]"}
        )
    widths = {len(r) for r in rows}
    if len(widths) != 1:
        raise ValidationError(
            f"'{name}' rows must all have the same length",
            expected={name: "rectangular list[list[number]]"},
            errors=[{"field": name, "message": f"row lengths {sorted(widths)}"}],
        )
    return np.vstack([_as_array(r, name) for r in rows])


def _float(value: Any) -> float:
    result = float(value)
    return 0.0 if math.isnan(result) else result


# === Descriptive ===


def mean(values: Sequence[float]) -> float:
    return float(np.mean(_as_array(values)))


def median(values: Sequence[float]) -> float:
    return float(np.median(_as_array(values)))


def variance(values: Sequence[float], sample: bool = False) -> float:
    """Population variance, or sample variance (n-1); n <= 1 with sample=True gives 0."""
    arr = _as_array(values)
    if sample and arr.size < 2:
        return 0.0
    return float(np.var(arr, ddof=1 if sample else 0))


def standard_deviation(values: Sequence[float], sample: bool = False) -> float:
    return math.sqrt(variance(values, sample=sample))


def percentile(values: Sequence[float], p: float) -> float:
    """Percentile with linear interpolation between ranks.

    Raises:
        ValidationError: If values is empty or p is outside [0, 100]
    """
    if p is None or not 0 <= p <= 100:
        raise ValidationError(
            f"Percentile must be between 0 and 100, got {p}", expected={"p": "number in [0, 100]"}
        )
    arr = _as_array(values)
    return float(np.percentile(arr, p, method="linear"))


def quartiles(values: Sequence[float]) -> dict[str, float]:
    arr = _as_array(values)
    q1, q2, q3 = np.percentile(arr, [25, 50, 75], method="linear")
    return {"q1": float(q1), "q2": float(q2), "q3": float(q3)}


def interquartile_range(values: Sequence[float]) -> float:
    q = quartiles(values)
    return q["q3"] - q["q1"]


def detect_outliers(values: Sequence[float], multiplier: float = 1.5) -> dict[str, Any]:
    """IQR rule: outliers are below Q1 - k*IQR or above Q3 + k*IQR."""
    arr = _as_array(values)
    q = quartiles(values)
    iqr = q["q3"] - q["q1"]
    lower = q["q1"] - multiplier * iqr
    upper = q["q3"] + multiplier * iqr
    mask = (arr < lower) | (arr > upper)
    indices = [int(i) for i in np.flatnonzero(mask)]
    return {
        "q1": q["q1"],
        "q3": q["q3"],
        "iqr": iqr,
        "lower_bound": lower,
        "upper_bound": upper,
        "outliers": [float(arr[i]) for i in indices],
        "indices": indices,
        "outlier_count": len(indices),
    }


def z_score_normalize(values: Sequence[float]) -> list[float]:
    """(x - mean) / population stddev; all zeros when stddev is 0."""
    arr = _as_array(values)
    std = float(np.std(arr))
    if std == 0:
        return [0.0] * arr.size
    return [float(v) for v in (arr - arr.mean()) / std]


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Population stddev / mean; 0 when mean is 0."""
    arr = _as_array(values)
    m = float(np.mean(arr))
    if m == 0:
        return 0.0
    return float(np.std(arr)) / m


def standard_error(values: Sequence[float]) -> float:
    """Sample stddev / sqrt(n); 0 when n <= 1."""
    arr = _as_array(values)
    if arr.size <= 1:
        return 0.0
    return float(np.std(arr, ddof=1) / math.sqrt(arr.size))


def descriptive_statistics(values: Sequence[float]) -> dict[str, float | int]:
    arr = _as_array(values)
    q = quartiles(values)
    return {
        "count": int(arr.size),
        "sum": float(arr.sum()),
        "mean": float(arr.mean()),
        "median": q["q2"],
        "min": float(arr.min()),
        "max": float(arr.max()),
        "range": float(arr.max() - arr.min()),
        "variance": float(np.var(arr)),
        "standard_deviation": float(np.std(arr)),
        "q1": q["q1"],
        "q3": q["q3"],
        "iqr": q["q3"] - q["q1"],
        "coefficient_of_variation": coefficient_of_variation(values),
        "standard_error": standard_error(values),
    }


# === Multivariate ===


def _columns(columns: Sequence[Sequence[float]], min_rows: int = 2) -> np.ndarray:
    if not columns or len(columns) < 1:
        raise ValidationError(
            "At least one column is required", expected={"data": "list[list[number]]"}
        )
    lengths = [len(c) for c in columns]
    if len(set(lengths)) != 1:
        raise ValidationError(
            "All columns must have the same length",
            expected={"data": "list of equal-length numeric columns"},
            errors=[{"field": "data", "message": f"column lengths {lengths}"}],
        )
    return np.vstack(
        [_as_array(c, f"data[{i}]", min_size=min_rows) for i, c in enumerate(columns)]
    )


def correlation_matrix(columns: Sequence[Sequence[float]]) -> list[list[float]]:
    """Pairwise Pearson correlation; a zero-variance column correlates 0 with others."""
    matrix = _columns(columns)
    centered = matrix - matrix.mean(axis=1, keepdims=True)
    norms = np.sqrt((centered**2).sum(axis=1))
    k = matrix.shape[0]
    result = [[0.0] * k for _ in range(k)]
    for i in range(k):
        for j in range(k):
            if i == j:
                result[i][j] = 1.0
            elif norms[i] == 0 or norms[j] == 0:
                result[i][j] = 0.0
            else:
                r = float(np.dot(centered[i], centered[j]) / (norms[i] * norms[j]))
                result[i][j] = max(-1.0, min(1.0, r))
    return result


def covariance(columns: Sequence[Sequence[float]], sample: bool = True) -> list[list[float]]:
    """Covariance matrix of equal-length columns (n-1 denominator by default)."""
    matrix = _columns(columns)
    ddof = 1 if sample else 0
    cov = np.atleast_2d(np.cov(matrix, ddof=ddof))
    return [[float(v) for v in row] for row in cov]


# === Hypothesis tests ===


def t_test(
    sample_a: Sequence[float],
    sample_b: Sequence[float],
    equal_var: bool = False,
    alpha: float = 0.05,
) -> dict[str, Any]:
    """Two-sample t-test (Welch by default)."""
    a = _as_array(sample_a, "sample_a", min_size=2)
    b = _as_array(sample_b, "sample_b", min_size=2)
    result = stats.ttest_ind(a, b, equal_var=equal_var)
    statistic = _float(result.statistic)
    p_value = float(result.pvalue)
    if math.isnan(p_value):
        # Both samples constant
        p_value = 1.0 if float(a.mean()) == float(b.mean()) else 0.0
    return {
        "statistic": statistic,
        "p_value": p_value,
        "alpha": alpha,
        "significant": p_value < alpha,
        "mean_a": float(a.mean()),
        "mean_b": float(b.mean()),
    }


def chi_square_test(observed: Sequence[Sequence[float]], alpha: float = 0.05) -> dict[str, Any]:
    """Chi-square test of independence on a contingency table."""
    table = _as_matrix(observed, "observed")
    if np.any(table < 0):
        raise ValidationError(
            "Observed counts must be non-negative", expected={"observed": "counts >= 0"}
        )
    try:
        result = stats.chi2_contingency(table)
    except ValueError as e:
        raise ValidationError(
            str(e), expected={"observed": "contingency table without empty rows or columns"}
        ) from e
    p_value = _float(result.pvalue) if not math.isnan(float(result.pvalue)) else 1.0
    return {
        "statistic": _float(result.statistic),
        "p_value": p_value,
        "degrees_of_freedom": int(result.dof),
        "alpha": alpha,
        "significant": p_value < alpha,
    }


# === Series ===


def moving_average(values: Sequence[float], window: int = 3) -> list[float]:
    arr = _as_array(values)
    if window < 1 or window > arr.size:
        raise ValidationError(
            f"Window must be between 1 and {arr.size}",
            expected={"window": f"int in [1, {arr.size}]"},
        )
    kernel = np.ones(window) / window
    return [float(v) for v in np.convolve(arr, kernel, mode="valid")]


def linear_trend(values: Sequence[float], x: Sequence[float] | None = None) -> dict[str, Any]:
    """Least-squares trend plus change-based direction classification.

    Direction: "stable" when the mean change is under 10% of the change
    volatility, "volatile" when volatility exceeds twice the mean change,
    otherwise "increasing"/"decreasing".
    """
    arr = _as_array(values)
    if arr.size < 2:
        return {
            "trend": "unknown",
            "slope": None,
            "intercept": None,
            "r_squared": None,
            "change_rate": None,
            "volatility": 0.0,
            "trend_strength": 0.0,
            "next_value": None,
        }
    xs = _as_array(x, "x") if x is not None else np.arange(arr.size, dtype=float)
    if xs.size != arr.size:
        raise ValidationError(
            "'x' must have the same length as values",
            expected={"x": f"list[number] of length {arr.size}"},
        )

    if np.all(xs == xs[0]):
        raise ValidationError("'x' must not be constant", expected={"x": "distinct positions"})
    fit = stats.linregress(xs, arr)

    changes = np.diff(arr)
    change_rate = float(changes.mean())
    volatility = float(changes.std())

    if abs(change_rate) <= volatility * 0.1:
        trend, strength = "stable", 0.1
    elif change_rate > 0:
        trend, strength = "increasing", min(1.0, abs(change_rate) / (volatility or 1))
    else:
        trend, strength = "decreasing", min(1.0, abs(change_rate) / (volatility or 1))
    if volatility > abs(change_rate) * 2:
        trend, strength = "volatile", min(1.0, volatility / (abs(change_rate) or 1))

    return {
        "trend": trend,
        "slope": _float(fit.slope),
        "intercept": _float(fit.intercept),
        "r_squared": _float(fit.rvalue) ** 2,
        "change_rate": change_rate,
        "volatility": volatility,
        "trend_strength": strength,
        "next_value": float(arr[-1]) + change_rate,
    }
