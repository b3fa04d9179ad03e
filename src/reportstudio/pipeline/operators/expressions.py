"""Restricted arithmetic expressions for derived columns.

Grammar: ``{column}`` references, numeric literals, parentheses, unary
minus/plus and the binary operators ``+ - * / % **``. Expressions are
parsed with ``ast`` and walked node by node; nothing is ever evaluated as
Python code.

A row whose referenced cells are null or non-numeric evaluates to None, as
does division by zero. Expressions longer than MAX_EXPRESSION_LENGTH
characters or nested deeper than MAX_DEPTH are rejected when parsed.
"""

from __future__ import annotations

import ast
import math
import operator
import re
from collections.abc import Callable
from typing import Any

from reportstudio.sources.filtering import to_number

_REFERENCE = re.compile(r"\{([^{}]+)\}")

_BINARY: dict[type[ast.operator], Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY: dict[type[ast.unaryop], Callable[[float], float]] = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

MAX_EXPONENT = 1_000
MAX_EXPRESSION_LENGTH = 1_000
MAX_DEPTH = 200


class ExpressionError(ValueError):
    """Expression outside the supported grammar."""


class ArithmeticExpression:
    """A parsed, validated arithmetic expression over column references."""

    def __init__(self, source: str):
        if len(source) > MAX_EXPRESSION_LENGTH:
            raise ExpressionError(
                f"Expression is {len(source)} characters long; "
                f"the maximum is {MAX_EXPRESSION_LENGTH}"
            )
        self.source = source
        self._names: dict[str, str] = {}

        def substitute(match: re.Match[str]) -> str:
            column = match.group(1).strip()
            placeholder = f"_c{len(self._names)}"
            for existing, name in self._names.items():
                if name == column:
                    return existing
            self._names[placeholder] = column
            return placeholder

        text = _REFERENCE.sub(substitute, source)
        try:
            tree = ast.parse(text.strip(), mode="eval")
            self._check(tree.body, 0)
        except SyntaxError as e:
            raise ExpressionError(f"Invalid expression {source!r}: {e.msg}") from e
        except (RecursionError, MemoryError) as e:
            raise ExpressionError("Expression is nested too deeply to evaluate") from e
        self._tree = tree.body

    @property
    def columns(self) -> list[str]:
        """Referenced column names."""
        return list(self._names.values())

    def _check(self, node: ast.AST, depth: int) -> None:
        if depth > MAX_DEPTH:
            raise ExpressionError(f"Expression nests deeper than {MAX_DEPTH} levels")
        if isinstance(node, ast.BinOp):
            if type(node.op) not in _BINARY:
                raise ExpressionError(f"Operator not allowed in {self.source!r}")
            self._check(node.left, depth + 1)
            self._check(node.right, depth + 1)
        elif isinstance(node, ast.UnaryOp):
            if type(node.op) not in _UNARY:
                raise ExpressionError(f"Operator not allowed in {self.source!r}")
            self._check(node.operand, depth + 1)
        elif isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, int | float):
                raise ExpressionError(f"Only numeric literals are allowed in {self.source!r}")
        elif isinstance(node, ast.Name):
            if node.id not in self._names:
                raise ExpressionError(
                    f"Unknown name {node.id!r} in {self.source!r}; "
                    "reference columns as {column}"
                )
        else:
            raise ExpressionError(
                f"Unsupported syntax ({type(node).__name__}) in {self.source!r}"
            )

    def _eval(self, node: ast.AST, values: dict[str, float]) -> float:
        if isinstance(node, ast.BinOp):
            left = self._eval(node.left, values)
            right = self._eval(node.right, values)
            if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
                raise OverflowError("exponent too large")
            return _BINARY[type(node.op)](left, right)
        if isinstance(node, ast.UnaryOp):
            return _UNARY[type(node.op)](self._eval(node.operand, values))
        if isinstance(node, ast.Constant):
            return float(node.value)
        assert isinstance(node, ast.Name)
        return values[node.id]

    def evaluate(self, record: dict[str, Any]) -> float | None:
        """Evaluate against one record; None when a reference is not numeric."""
        values: dict[str, float] = {}
        for placeholder, column in self._names.items():
            number = to_number(record.get(column))
            if number is None:
                return None
            values[placeholder] = number
        try:
            result = self._eval(self._tree, values)
        except (ZeroDivisionError, OverflowError):
            return None
        if isinstance(result, complex) or not math.isfinite(result):
            return None
        return result

    def __repr__(self) -> str:
        return f"ArithmeticExpression({self.source!r})"
