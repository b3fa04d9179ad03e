"""Tests for restricted arithmetic expressions."""

import pytest

from reportstudio.pipeline.operators import ArithmeticExpression, ExpressionError


class TestArithmeticExpression:
    """Tests for parsing and evaluating derived column expressions."""

    def test_references(self):
        expr = ArithmeticExpression("({unit price} - {cost}) * {unit price}")
        assert expr.columns == ["unit price", "cost"]

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("{a} + {b}", 7.0),
            ("{a} * {b} - 1", 11.0),
            ("-{a} ** 2", -9.0),
            ("({a} + 1) / {b}", 1.0),
            ("{b} % {a}", 1.0),
            ("2.5 * 2", 5.0),
        ],
    )
    def test_evaluate(self, source, expected):
        assert ArithmeticExpression(source).evaluate({"a": 3, "b": "4"}) == expected

    def test_null_or_text_reference_gives_none(self):
        expr = ArithmeticExpression("{a} + 1")
        assert expr.evaluate({"a": None}) is None
        assert expr.evaluate({"a": "n/a"}) is None
        assert expr.evaluate({}) is None

    def test_division_by_zero_gives_none(self):
        assert ArithmeticExpression("{a} / {b}").evaluate({"a": 1, "b": 0}) is None

    def test_huge_exponent_gives_none(self):
        assert ArithmeticExpression("{a} ** 100000").evaluate({"a": 2}) is None

    @pytest.mark.parametrize(
        "source",
        [
            "__import__('os').system('ls')",
            "{a}.real",
            "[1, 2]",
            "'text'",
            "a + 1",
            "{a} // 2",
            "{a} if {b} else 1",
            "True + 1",
            "{a} +",
        ],
    )
    def test_rejected(self, source):
        with pytest.raises(ExpressionError):
            ArithmeticExpression(source)

    def test_overlong_expression_rejected(self):
        with pytest.raises(ExpressionError) as exc_info:
            ArithmeticExpression("+".join(["{a}"] * 5000))
        assert "maximum" in str(exc_info.value)

    @pytest.mark.parametrize("source", ["-" * 300 + "1", "1" + "+1" * 300])
    def test_deep_nesting_rejected(self, source):
        with pytest.raises(ExpressionError):
            ArithmeticExpression(source)

    def test_long_flat_sum_within_limits(self):
        expr = ArithmeticExpression("+".join(["{a}"] * 150))
        assert expr.evaluate({"a": 2}) == 300.0
