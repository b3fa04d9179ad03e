"""Transformation pipeline executor.

Runs a transformation's steps strictly sequentially in topological order:

    PENDING -> RUNNING(step i) -> ... -> COMPLETED | FAILED(step i)

The plan (graph, execution order, every step configuration) is validated
before the first step runs. Execution halts at the first failing step;
steps after it never run and the run has no output. Inactive steps pass
their first input through unchanged.

Preview mode truncates only the final output; every step sees full data.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

import duckdb

from reportstudio.core.connections import ConnectionManager
from reportstudio.core.errors import ReportingError, TransformationStepError, ValidationError
from reportstudio.core.logging import (
    end_run_metrics,
    end_step_metrics,
    get_logger,
    log_context,
    record_error,
    record_rows,
    start_run_metrics,
    start_step_metrics,
)
from reportstudio.core.models import StepSnapshot, TransformationSnapshot
from reportstudio.core.relations import relation_cursor
from reportstudio.pipeline.graph import build_step_graph, execution_order, step_inputs
from reportstudio.pipeline.models import (
    RunResult,
    RunStatus,
    StepResult,
    TransformationResult,
)
from reportstudio.pipeline.operators import (
    MULTI_INPUT_OPERATORS,
    OperatorConfig,
    OperatorError,
    Records,
    run_operator,
    to_result,
    validate_config,
)

logger = get_logger(__name__)


@dataclass
class PlannedStep:
    """A step with its resolved operator, validated config and inputs."""

    step: StepSnapshot
    operator: str
    config: OperatorConfig | None  # None for inactive steps
    inputs: list[str]


def plan_transformation(steps: list[StepSnapshot]) -> list[PlannedStep]:
    """Validate the whole pipeline before execution.

    Raises:
        TransformationStepError: Cycle, bad reference or invalid step config
    """
    G = build_step_graph(steps)
    planned = []
    for step in execution_order(steps):
        inputs = step_inputs(G, step)
        if not step.is_active:
            planned.append(PlannedStep(step, step.operator, None, inputs))
            continue
        try:
            operator, config = validate_config(step.operator, step.config)
        except ValidationError as e:
            raise TransformationStepError(
                f"Step {step.order} ({step.operator}): {e.message}",
                step_id=step.id,
                order=step.order,
                operator=step.operator,
                details=e.details,
            ) from e
        if operator == "join" and len(inputs) < 2:
            raise TransformationStepError(
                f"Step {step.order} (join) needs two input steps",
                step_id=step.id,
                order=step.order,
                operator=step.operator,
                details={"input_step_ids": inputs},
            )
        planned.append(PlannedStep(step, operator, config, inputs))
    return planned


class TransformationExecutor:
    """Executes transformations over in-memory source rows.

    Holds no mutable state between runs. Relational steps run on a DuckDB
    cursor of ``manager`` (one cursor per run), or on a private in-memory
    database when no manager is given.
    """

    def __init__(self, manager: ConnectionManager | None = None):
        self.manager = manager

    def run(
        self,
        transformation: TransformationSnapshot,
        source_rows: Records,
        preview_rows: int | None = None,
    ) -> RunResult:
        """Run every step and return the final output.

        Args:
            transformation: Fresh snapshot of the transformation and its steps
            source_rows: Rows of the input dataset
            preview_rows: Truncate the final output to this many rows

        Returns:
            RunResult; on failure it identifies the failing step
        """
        run_id = str(uuid4())
        start = time.time()
        start_run_metrics(run_id, transformation.id)

        with log_context(transformation_id=transformation.id, tenant_id=transformation.tenant_id):
            try:
                with relation_cursor(self.manager) as cursor:
                    result = self._run(transformation, source_rows, preview_rows, cursor)
            finally:
                metrics = end_run_metrics()
            result.duration_seconds = time.time() - start
            logger.info(
                "transformation_run_finished",
                status=result.status.value,
                steps=len(result.step_results),
                failed_step_id=result.failed_step_id,
                duration_seconds=round(result.duration_seconds, 4),
                slowest=metrics.get_slowest_steps(3) if metrics else [],
            )
        return result

    def _run(
        self,
        transformation: TransformationSnapshot,
        source_rows: Records,
        preview_rows: int | None,
        cursor: duckdb.DuckDBPyConnection,
    ) -> RunResult:
        try:
            plan = plan_transformation(transformation.steps)
        except TransformationStepError as e:
            logger.info("transformation_plan_invalid", step_id=e.step_id, error=e.message)
            failed = StepResult.failed(
                e.step_id or "",
                e.order if e.order is not None else -1,
                e.operator or "",
                e.message,
                details=e.details,
            )
            return RunResult(
                status=RunStatus.FAILED,
                transformation_id=transformation.id,
                step_results=[failed],
            )

        outputs: dict[str, Records] = {}
        results: list[StepResult] = []
        final: Records = list(source_rows)

        for planned in plan:
            step = planned.step
            inputs = [outputs[i] for i in planned.inputs] or [list(source_rows)]
            step_result, rows = self._run_step(planned, inputs, cursor)
            results.append(step_result)
            if rows is None:
                return RunResult(
                    status=RunStatus.FAILED,
                    transformation_id=transformation.id,
                    step_results=results,
                )
            outputs[step.id] = rows
            final = rows

        output = to_result(final)
        total = output.row_count
        truncated = preview_rows is not None and total > preview_rows
        if truncated:
            assert preview_rows is not None
            output = TransformationResult(
                data=output.data[:preview_rows],
                columns=output.columns,
                schema=output.schema_columns,
                row_count=preview_rows,
            )
        return RunResult(
            status=RunStatus.COMPLETED,
            transformation_id=transformation.id,
            step_results=results,
            output=output,
            total_rows=total,
            truncated=truncated,
        )

    def _run_step(
        self, planned: PlannedStep, inputs: list[Records], cursor: duckdb.DuckDBPyConnection
    ) -> tuple[StepResult, Records | None]:
        step = planned.step
        start = time.time()
        start_step_metrics(step.id, planned.operator)
        rows_in = sum(len(t) for t in inputs)

        try:
            if planned.config is None:
                rows = inputs[0]
                record_rows(rows_in, len(rows))
                logger.debug("step_skipped", step_id=step.id, order=step.order)
                return StepResult.skipped(step.id, step.order, step.operator, len(rows)), rows

            # Only join/union consume more than one input
            if planned.operator not in MULTI_INPUT_OPERATORS:
                inputs = inputs[:1]
            try:
                rows = run_operator(planned.operator, inputs, planned.config, cursor)
            except (OperatorError, ReportingError, ValueError, TypeError, duckdb.Error) as e:
                message = e.message if isinstance(e, ReportingError) else str(e)
                record_error(message)
                logger.info(
                    "step_failed",
                    step_id=step.id,
                    order=step.order,
                    operator=planned.operator,
                    error=message,
                )
                failed = StepResult.failed(
                    step.id, step.order, step.operator, message, duration=time.time() - start
                )
                return failed, None

            record_rows(rows_in, len(rows))
            schema = to_result(rows).schema_columns
            logger.debug(
                "step_completed",
                step_id=step.id,
                order=step.order,
                operator=planned.operator,
                rows_in=rows_in,
                rows_out=len(rows),
            )
            result = StepResult.success(
                step.id,
                step.order,
                step.operator,
                len(rows),
                schema,
                duration=time.time() - start,
            )
            return result, rows
        finally:
            end_step_metrics()


def run_steps(
    steps: list[dict[str, Any]] | list[StepSnapshot],
    source_rows: Records,
    preview_rows: int | None = None,
    transformation_id: str = "adhoc",
    tenant_id: str = "adhoc",
) -> RunResult:
    """Run an ad hoc list of steps (dicts or snapshots) over source rows."""
    snapshots = [s if isinstance(s, StepSnapshot) else StepSnapshot(**s) for s in steps]
    transformation = TransformationSnapshot(
        id=transformation_id,
        tenant_id=tenant_id,
        name=transformation_id,
        input_dataset_id="adhoc",
        steps=snapshots,
    )
    return TransformationExecutor().run(transformation, source_rows, preview_rows)
