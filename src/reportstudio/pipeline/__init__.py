"""Transformation pipeline: operators, step graph and executor."""

from reportstudio.pipeline.executor import (
    PlannedStep,
    TransformationExecutor,
    plan_transformation,
    run_steps,
)
from reportstudio.pipeline.graph import build_step_graph, execution_order
from reportstudio.pipeline.models import (
    RunResult,
    RunStatus,
    StepResult,
    StepStatus,
    TransformationResult,
)
from reportstudio.pipeline.operators import execute_transformation, run_operator

__all__ = [
    "PlannedStep",
    "TransformationExecutor",
    "plan_transformation",
    "run_steps",
    "build_step_graph",
    "execution_order",
    "RunResult",
    "RunStatus",
    "StepResult",
    "StepStatus",
    "TransformationResult",
    "execute_transformation",
    "run_operator",
]
