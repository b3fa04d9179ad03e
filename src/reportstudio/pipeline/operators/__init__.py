"""Transformation operators.

``run_operator`` validates a step configuration and applies the operator,
raising on failure. ``execute_transformation`` is the single-call form that
reports failures in the result instead.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import duckdb

from reportstudio.analysis.typing import detect_schema
from reportstudio.core.errors import ValidationError
from reportstudio.core.logging import get_logger
from reportstudio.pipeline.models import TransformationResult
from reportstudio.pipeline.operators.configs import (
    MULTI_INPUT_OPERATORS,
    OPERATOR_CONFIGS,
    OperatorConfig,
    canonical_operator,
    config_shape,
    validate_config,
)
from reportstudio.pipeline.operators.expressions import ArithmeticExpression, ExpressionError
from reportstudio.pipeline.operators.implementations import (
    OperatorError,
    Records,
    apply_operator,
)
from reportstudio.sources.base import ordered_columns

logger = get_logger(__name__)


def to_result(records: Records, columns: list[str] | None = None) -> TransformationResult:
    """Wrap operator output with its inferred schema."""
    cols = ordered_columns(records) if columns is None or records else columns
    return TransformationResult(
        data=records,
        columns=cols,
        schema=detect_schema(records, cols),
        row_count=len(records),
    )


def run_operator(
    operator: str,
    inputs: Sequence[Records],
    config: dict[str, Any] | OperatorConfig | None,
    cursor: duckdb.DuckDBPyConnection | None = None,
) -> Records:
    """Validate config and apply an operator.

    Args:
        operator: Operator name or alias
        inputs: Input tables (two for join)
        config: Raw or validated configuration
        cursor: DuckDB cursor for relational operators

    Returns:
        Output records

    Raises:
        ValidationError: Unknown operator or invalid configuration
        OperatorError: The operator could not be applied to the input
    """
    if isinstance(config, OperatorConfig):
        name = canonical_operator(operator)
        validated = config
    else:
        name, validated = validate_config(operator, config)
    if name == "join" and len(inputs) < 2:
        raise OperatorError("join requires two inputs")
    return apply_operator(name, [list(t) for t in inputs], validated, cursor)


def execute_transformation(
    operator: str,
    rows: Records,
    config: dict[str, Any] | None,
    secondary: Records | None = None,
    cursor: duckdb.DuckDBPyConnection | None = None,
) -> TransformationResult:
    """Apply one operator to input rows.

    Args:
        operator: Operator name or alias
        rows: Input records
        config: Operator configuration
        secondary: Second input for join/union
        cursor: DuckDB cursor for relational operators

    Returns:
        TransformationResult; ``error`` is set and ``data`` is empty on failure
    """
    inputs = [rows] if secondary is None else [rows, secondary]
    try:
        output = run_operator(operator, inputs, config, cursor)
    except ValidationError as e:
        logger.info("transformation_invalid", operator=operator, error=e.message)
        return TransformationResult(error=e.message)
    except (OperatorError, ValueError, TypeError, duckdb.Error) as e:
        logger.info("transformation_failed", operator=operator, error=str(e))
        return TransformationResult(error=str(e))
    return to_result(output)


__all__ = [
    "MULTI_INPUT_OPERATORS",
    "OPERATOR_CONFIGS",
    "ArithmeticExpression",
    "ExpressionError",
    "OperatorConfig",
    "OperatorError",
    "Records",
    "canonical_operator",
    "config_shape",
    "execute_transformation",
    "run_operator",
    "to_result",
    "validate_config",
]
