"""Pipeline result types.

Status and result shapes for single operator calls, steps and whole runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from reportstudio.core.errors import TransformationStepError
from reportstudio.core.models import ColumnDescriptor


class StepStatus(str, Enum):
    """Status of a pipeline step."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"  # Inactive step, passed its input through


class RunStatus(str, Enum):
    """Status of a transformation run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TransformationResult(BaseModel):
    """Output of one operator application."""

    model_config = ConfigDict(populate_by_name=True)

    data: list[dict[str, Any]] = Field(default_factory=list)
    columns: list[str] = Field(default_factory=list)
    schema_columns: list[ColumnDescriptor] = Field(default_factory=list, alias="schema")
    row_count: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class StepResult:
    """Result from a step execution."""

    step_id: str
    order: int
    operator: str
    status: StepStatus
    row_count: int = 0
    duration_seconds: float = 0.0
    schema: list[ColumnDescriptor] = field(default_factory=list)
    error: str | None = None
    error_details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(
        cls,
        step_id: str,
        order: int,
        operator: str,
        row_count: int,
        schema: list[ColumnDescriptor],
        duration: float = 0.0,
    ) -> StepResult:
        """Create a successful result."""
        return cls(
            step_id=step_id,
            order=order,
            operator=operator,
            status=StepStatus.COMPLETED,
            row_count=row_count,
            schema=schema,
            duration_seconds=duration,
        )

    @classmethod
    def failed(
        cls,
        step_id: str,
        order: int,
        operator: str,
        error: str,
        duration: float = 0.0,
        details: dict[str, Any] | None = None,
    ) -> StepResult:
        """Create a failed result."""
        return cls(
            step_id=step_id,
            order=order,
            operator=operator,
            status=StepStatus.FAILED,
            error=error,
            error_details=details or {},
            duration_seconds=duration,
        )

    @classmethod
    def skipped(cls, step_id: str, order: int, operator: str, row_count: int) -> StepResult:
        """Create a result for an inactive step."""
        return cls(
            step_id=step_id,
            order=order,
            operator=operator,
            status=StepStatus.SKIPPED,
            row_count=row_count,
            error="step is inactive",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "order": self.order,
            "operator": self.operator,
            "status": self.status.value,
            "row_count": self.row_count,
            "duration_seconds": self.duration_seconds,
            "schema": [c.model_dump(mode="json") for c in self.schema],
            "error": self.error,
        }


@dataclass
class RunResult:
    """Outcome of a transformation run or preview.

    On failure ``output`` is None and ``step_results`` ends at the failing
    step; later steps never ran.
    """

    status: RunStatus
    transformation_id: str | None = None
    step_results: list[StepResult] = field(default_factory=list)
    output: TransformationResult | None = None
    total_rows: int = 0  # Final output rows before preview truncation
    truncated: bool = False
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def failed_step(self) -> StepResult | None:
        return next((s for s in self.step_results if s.status == StepStatus.FAILED), None)

    @property
    def failed_step_id(self) -> str | None:
        step = self.failed_step
        return step.step_id if step else None

    def raise_for_status(self) -> RunResult:
        """Raise TransformationStepError if the run failed."""
        step = self.failed_step
        if step is not None:
            raise TransformationStepError(
                f"Step {step.order} ({step.operator}) failed: {step.error}",
                step_id=step.step_id,
                order=step.order,
                operator=step.operator,
                details=step.error_details,
            )
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "transformation_id": self.transformation_id,
            "failed_step_id": self.failed_step_id,
            "steps": [s.to_dict() for s in self.step_results],
            "output": self.output.model_dump(mode="json", by_alias=True) if self.output else None,
            "total_rows": self.total_rows,
            "truncated": self.truncated,
            "duration_seconds": self.duration_seconds,
        }
