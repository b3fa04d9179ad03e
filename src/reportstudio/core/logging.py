"""Structured logging and run metrics.

Usage:
    from reportstudio.core.logging import get_logger, configure_logging

    # Configure at startup
    configure_logging(log_level="INFO", log_format="json")

    # Get logger in any module
    logger = get_logger(__name__)

    # Log with structured context
    logger.info("query_executed", provider="postgresql", rows=120)

    # Scoped context propagation
    with log_context(tenant_id="t-1", transformation_id="tr-9"):
        logger.info("step_started", step_id="s-1")
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, cast

import structlog
from structlog.typing import FilteringBoundLogger

# Context variables for correlation
_run_context: ContextVar[dict[str, Any] | None] = ContextVar("run_context", default=None)


@dataclass
class StepMetrics:
    """Metrics collected while one transformation step executes."""

    step_id: str
    operator: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None

    rows_in: int = 0
    rows_out: int = 0

    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Get duration in seconds."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "step_id": self.step_id,
            "operator": self.operator,
            "duration_seconds": self.duration_seconds,
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "error_count": len(self.errors),
        }


@dataclass
class RunMetrics:
    """Aggregate metrics for one transformation run."""

    run_id: str
    transformation_id: str | None = None
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    steps: list[StepMetrics] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Get total duration in seconds."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return (datetime.now(UTC) - self.start_time).total_seconds()

    def add_step(self, metrics: StepMetrics) -> None:
        """Add step metrics."""
        self.steps.append(metrics)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "run_id": self.run_id,
            "transformation_id": self.transformation_id,
            "duration_seconds": self.duration_seconds,
            "step_count": len(self.steps),
            "total_rows_out": sum(s.rows_out for s in self.steps),
            "steps": [s.to_dict() for s in self.steps],
        }

    def get_slowest_steps(self, n: int = 5) -> list[tuple[str, float]]:
        """Get the N slowest steps."""
        ordered = sorted(self.steps, key=lambda s: s.duration_seconds, reverse=True)
        return [(s.step_id, s.duration_seconds) for s in ordered[:n]]


# Metrics storage (per-run)
_current_metrics: ContextVar[RunMetrics | None] = ContextVar("current_metrics", default=None)
_current_step_metrics: ContextVar[StepMetrics | None] = ContextVar(
    "current_step_metrics", default=None
)


def start_run_metrics(run_id: str, transformation_id: str | None = None) -> RunMetrics:
    """Start collecting metrics for a transformation run."""
    metrics = RunMetrics(run_id=run_id, transformation_id=transformation_id)
    _current_metrics.set(metrics)
    return metrics


def get_run_metrics() -> RunMetrics | None:
    """Get current run metrics."""
    return _current_metrics.get()


def start_step_metrics(step_id: str, operator: str) -> StepMetrics:
    """Start collecting metrics for a step."""
    metrics = StepMetrics(step_id=step_id, operator=operator)
    _current_step_metrics.set(metrics)
    return metrics


def get_step_metrics() -> StepMetrics | None:
    """Get current step metrics."""
    return _current_step_metrics.get()


def end_step_metrics() -> StepMetrics | None:
    """End current step metrics and add them to the run metrics."""
    step_metrics = _current_step_metrics.get()
    if step_metrics:
        step_metrics.end_time = datetime.now(UTC)
        run_metrics = _current_metrics.get()
        if run_metrics:
            run_metrics.add_step(step_metrics)
        _current_step_metrics.set(None)
    return step_metrics


def end_run_metrics() -> RunMetrics | None:
    """End run metrics collection."""
    metrics = _current_metrics.get()
    if metrics:
        metrics.end_time = datetime.now(UTC)
        _current_metrics.set(None)
    return metrics


def _add_run_context(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor to add run context to log events."""
    context = _run_context.get()
    if context:
        event_dict.update(context)
    return event_dict


def _add_metrics_context(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor to add current metrics context."""
    step_metrics = _current_step_metrics.get()
    if step_metrics:
        event_dict["_step"] = step_metrics.step_id
    run_metrics = _current_metrics.get()
    if run_metrics:
        event_dict["_run_id"] = run_metrics.run_id
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    show_timestamps: bool = True,
    color: bool = True,
) -> None:
    """Configure structured logging for the engine.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Output format ("console" for development, "json" for production)
        show_timestamps: Whether to show timestamps
        color: Whether to use colors in console mode
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_run_context,
        _add_metrics_context,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if show_timestamps:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))

    if log_format == "json":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=color,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Also configure stdlib logging for libraries
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


def get_logger(name: str | None = None) -> FilteringBoundLogger:
    """Get a structured logger.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Bound structlog logger
    """
    return cast(FilteringBoundLogger, structlog.get_logger(name))


class LogContext:
    """Context manager for adding context to logs within a scope."""

    def __init__(self, **context: Any):
        self.context = context
        self.token: Any = None

    def __enter__(self) -> LogContext:
        current = _run_context.get() or {}
        new_context = {**current, **self.context}
        self.token = _run_context.set(new_context)
        return self

    def __exit__(self, *args: Any) -> None:
        if self.token:
            _run_context.reset(self.token)


def log_context(**context: Any) -> LogContext:
    """Create a context manager for scoped logging context.

    Usage:
        with log_context(tenant_id="abc", transformation_id="tr-1"):
            logger.info("processing")  # Will include tenant_id and transformation_id
    """
    return LogContext(**context)


def record_rows(rows_in: int, rows_out: int) -> None:
    """Record row counts in the current step metrics."""
    metrics = _current_step_metrics.get()
    if metrics:
        metrics.rows_in += rows_in
        metrics.rows_out += rows_out


def record_error(message: str) -> None:
    """Record an error in the current step metrics."""
    metrics = _current_step_metrics.get()
    if metrics:
        metrics.errors.append(message)


# Initialize with default configuration
configure_logging()
