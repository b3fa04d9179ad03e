"""Statistical function library with named dispatch."""

from reportstudio.analysis.statistics.functions import (
    chi_square_test,
    coefficient_of_variation,
    correlation_matrix,
    covariance,
    descriptive_statistics,
    detect_outliers,
    interquartile_range,
    linear_trend,
    mean,
    median,
    moving_average,
    percentile,
    quartiles,
    standard_deviation,
    standard_error,
    t_test,
    variance,
    z_score_normalize,
)
from reportstudio.analysis.statistics.registry import get_function, list_functions, run_function

__all__ = [
    "chi_square_test",
    "coefficient_of_variation",
    "correlation_matrix",
    "covariance",
    "descriptive_statistics",
    "detect_outliers",
    "interquartile_range",
    "linear_trend",
    "mean",
    "median",
    "moving_average",
    "percentile",
    "quartiles",
    "standard_deviation",
    "standard_error",
    "t_test",
    "variance",
    "z_score_normalize",
    "get_function",
    "list_functions",
    "run_function",
]
