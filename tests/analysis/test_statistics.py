"""Tests for the statistical function library and its named dispatch."""

import pytest

from reportstudio.analysis.statistics import (
    chi_square_test,
    coefficient_of_variation,
    correlation_matrix,
    covariance,
    descriptive_statistics,
    detect_outliers,
    linear_trend,
    list_functions,
    mean,
    median,
    moving_average,
    percentile,
    quartiles,
    run_function,
    standard_deviation,
    standard_error,
    t_test,
    variance,
    z_score_normalize,
)
from reportstudio.core.errors import UnknownFunctionError, ValidationError


class TestDescriptive:
    """Tests for univariate statistics."""

    def test_mean_median(self):
        assert mean([1, 2, 3, 4]) == 2.5
        assert median([3, 1, 2]) == 2.0

    def test_population_and_sample_variance(self):
        values = [2, 4, 4, 4, 5, 5, 7, 9]
        assert variance(values) == pytest.approx(4.0)
        assert standard_deviation(values) == pytest.approx(2.0)
        assert variance(values, sample=True) == pytest.approx(32 / 7)

    def test_sample_variance_of_single_value(self):
        assert variance([5], sample=True) == 0.0

    def test_percentile_interpolates(self):
        assert percentile([10, 12, 14, 100], 50) == pytest.approx(13.0)
        assert percentile([10, 12, 14, 100], 0) == 10.0
        assert percentile([10, 12, 14, 100], 100) == 100.0

    @pytest.mark.parametrize("p", [-1, 101])
    def test_percentile_out_of_range(self, p):
        with pytest.raises(ValidationError):
            percentile([1, 2, 3], p)

    def test_percentile_empty(self):
        with pytest.raises(ValidationError):
            percentile([], 50)

    def test_quartiles(self):
        assert quartiles([10, 12, 14, 100]) == {"q1": 11.5, "q2": 13.0, "q3": 35.5}

    def test_outliers(self):
        result = detect_outliers([10, 12, 14, 100])
        assert result["outliers"] == [100.0]
        assert result["indices"] == [3]
        assert result["upper_bound"] == pytest.approx(71.5)

    def test_no_outliers(self):
        assert detect_outliers([1, 2, 3, 4])["outlier_count"] == 0

    def test_z_score_constant_input(self):
        assert z_score_normalize([5, 5, 5]) == [0.0, 0.0, 0.0]

    def test_z_score(self):
        assert z_score_normalize([1, 3]) == [-1.0, 1.0]

    def test_degenerate_cases_return_zero(self):
        assert coefficient_of_variation([0, 0]) == 0.0
        assert standard_error([5]) == 0.0

    def test_descriptive_statistics(self):
        summary = descriptive_statistics([1, 2, 3, 4, 5])
        assert summary["count"] == 5
        assert summary["sum"] == 15.0
        assert summary["range"] == 4.0
        assert summary["median"] == 3.0
        assert summary["variance"] == pytest.approx(2.0)

    def test_non_finite_rejected(self):
        with pytest.raises(ValidationError):
            mean([1.0, float("nan")])


class TestMultivariate:
    """Tests for correlation and covariance."""

    def test_perfect_correlation(self):
        result = correlation_matrix([[1, 2, 3], [2, 4, 6], [3, 2, 1]])
        assert result[0][1] == pytest.approx(1.0)
        assert result[0][2] == pytest.approx(-1.0)
        assert result[1][1] == 1.0

    def test_zero_variance_column(self):
        result = correlation_matrix([[1, 1, 1], [1, 2, 3]])
        assert result[0][1] == 0.0
        assert result[0][0] == 1.0

    def test_unequal_lengths(self):
        with pytest.raises(ValidationError) as exc_info:
            correlation_matrix([[1, 2, 3], [1, 2]])
        assert exc_info.value.errors

    def test_covariance(self):
        result = covariance([[1, 2, 3], [2, 4, 6]])
        assert result == [[pytest.approx(1.0), pytest.approx(2.0)],
                          [pytest.approx(2.0), pytest.approx(4.0)]]


class TestHypothesisTests:
    """Tests for t-test and chi-square."""

    def test_t_test_significant(self):
        result = t_test([1, 2, 3, 4, 5], [10, 11, 12, 13, 14])
        assert result["significant"]
        assert result["statistic"] < 0
        assert result["mean_b"] == 12.0

    def test_t_test_constant_equal_samples(self):
        result = t_test([1, 1], [1, 1])
        assert result["p_value"] == 1.0
        assert not result["significant"]

    def test_t_test_needs_two_values(self):
        with pytest.raises(ValidationError):
            t_test([1], [2, 3])

    def test_chi_square(self):
        result = chi_square_test([[10, 20], [20, 10]])
        assert result["degrees_of_freedom"] == 1
        assert 0 <= result["p_value"] <= 1

    def test_chi_square_negative_counts(self):
        with pytest.raises(ValidationError):
            chi_square_test([[1, -1], [2, 3]])


class TestSeries:
    """Tests for moving average and trend."""

    def test_moving_average(self):
        assert moving_average([1, 2, 3, 4, 5], 3) == [2.0, 3.0, 4.0]

    def test_moving_average_window_too_large(self):
        with pytest.raises(ValidationError):
            moving_average([1, 2], 3)

    def test_increasing_trend(self):
        result = linear_trend([1, 2, 3, 4, 5])
        assert result["trend"] == "increasing"
        assert result["slope"] == pytest.approx(1.0)
        assert result["r_squared"] == pytest.approx(1.0)
        assert result["next_value"] == pytest.approx(6.0)

    def test_stable_trend(self):
        assert linear_trend([3, 3, 3])["trend"] == "stable"

    def test_volatile_trend(self):
        assert linear_trend([1, 10, 1, 10, 1])["trend"] == "volatile"

    def test_single_point(self):
        assert linear_trend([5])["trend"] == "unknown"


class TestDispatch:
    """Tests for run_function and list_functions."""

    def test_run_by_name(self):
        assert run_function("percentile", [10, 12, 14, 100], {"p": 50}) == pytest.approx(13.0)
        assert run_function("t_test", [[1, 2, 3], [4, 5, 6]])["mean_a"] == 2.0

    def test_unknown_function(self):
        with pytest.raises(UnknownFunctionError) as exc_info:
            run_function("harmonic_mean", [1, 2])
        assert "mean" in exc_info.value.available
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize(
        ("name", "data", "options"),
        [
            ("mean", ["a", "b"], None),
            ("mean", [], None),
            ("mean", [1, float("inf")], None),
            ("percentile", [1, 2], {"p": 150}),
            ("percentile", [1, 2], None),
            ("t_test", [[1, 2, 3]], None),
            ("mean", [1, 2], {"unexpected": True}),
        ],
    )
    def test_payload_errors_describe_expected_shape(self, name, data, options):
        with pytest.raises(ValidationError) as exc_info:
            run_function(name, data, options)
        assert "properties" in exc_info.value.expected
        assert exc_info.value.errors

    def test_list_functions(self):
        functions = {f["name"]: f for f in list_functions()}
        assert {"mean", "percentile", "t_test", "linear_trend"} <= set(functions)
        assert "p" in functions["percentile"]["payload"]["properties"]
