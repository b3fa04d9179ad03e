"""Tests for log context propagation and run metrics."""

from reportstudio.core import logging as rlog
from reportstudio.core.logging import (
    end_run_metrics,
    end_step_metrics,
    get_run_metrics,
    get_step_metrics,
    log_context,
    record_error,
    record_rows,
    start_run_metrics,
    start_step_metrics,
)
from reportstudio.pipeline import run_steps


class TestLogContext:
    """Tests for log_context."""

    def test_nested_context_merges_and_resets(self):
        with log_context(tenant_id="t1"):
            with log_context(transformation_id="tr-1"):
                event = rlog._add_run_context(None, "info", {"event": "x"})
                assert event == {"event": "x", "tenant_id": "t1", "transformation_id": "tr-1"}
            event = rlog._add_run_context(None, "info", {"event": "x"})
            assert event == {"event": "x", "tenant_id": "t1"}
        assert rlog._add_run_context(None, "info", {"event": "x"}) == {"event": "x"}


class TestRunMetrics:
    """Tests for the run/step metrics lifecycle."""

    def test_lifecycle(self):
        run = start_run_metrics("run-1", "tr-1")
        assert get_run_metrics() is run

        start_step_metrics("s1", "filter")
        record_rows(10, 4)
        event = rlog._add_metrics_context(None, "info", {})
        assert event == {"_step": "s1", "_run_id": "run-1"}
        step = end_step_metrics()
        assert get_step_metrics() is None

        start_step_metrics("s2", "join")
        record_error("missing column")
        end_step_metrics()

        assert end_run_metrics() is run
        assert get_run_metrics() is None
        assert (step.rows_in, step.rows_out) == (10, 4)
        summary = run.to_dict()
        assert summary["step_count"] == 2
        assert summary["total_rows_out"] == 4
        assert summary["steps"][1]["error_count"] == 1
        assert {s for s, _ in run.get_slowest_steps(5)} == {"s1", "s2"}

    def test_helpers_are_noops_without_metrics(self):
        record_rows(1, 1)
        record_error("ignored")
        assert end_step_metrics() is None
        assert end_run_metrics() is None

    def test_executor_collects_metrics_and_cleans_up(self):
        result = run_steps(
            [{"id": "s1", "order": 1, "operator": "limit", "config": {"count": 1}}],
            [{"a": 1}, {"a": 2}],
        )
        assert result.success
        assert get_run_metrics() is None
        assert get_step_metrics() is None
