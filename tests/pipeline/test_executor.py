"""Tests for step graphs and the transformation executor."""

import pytest

from reportstudio.core.errors import TransformationStepError
from reportstudio.core.models import StepSnapshot, TransformationSnapshot
from reportstudio.pipeline.executor import TransformationExecutor, plan_transformation, run_steps
from reportstudio.pipeline.graph import execution_order
from reportstudio.pipeline.models import RunStatus, StepStatus

ROWS = [{"id": i, "group": "a" if i % 2 else "b", "value": i * 10} for i in range(1, 11)]


def _step(step_id, order, operator, config=None, inputs=None, active=True):
    return StepSnapshot(
        id=step_id,
        order=order,
        operator=operator,
        config=config or {},
        input_step_ids=inputs or [],
        is_active=active,
    )


def _transformation(*steps):
    return TransformationSnapshot(
        id="tr-1", tenant_id="t1", name="test", input_dataset_id="ds-1", steps=list(steps)
    )


class TestExecutionOrder:
    """Tests for graph construction and ordering."""

    def test_linear_follows_order_field(self):
        steps = [_step("c", 3, "limit"), _step("a", 1, "limit"), _step("b", 2, "limit")]
        assert [s.id for s in execution_order(steps)] == ["a", "b", "c"]

    def test_dag_topological(self):
        steps = [
            _step("join", 1, "join", inputs=["left", "right"]),
            _step("left", 2, "filter"),
            _step("right", 3, "filter"),
        ]
        assert [s.id for s in execution_order(steps)] == ["left", "right", "join"]

    def test_cycle_detected(self):
        steps = [
            _step("a", 1, "limit", inputs=["c"]),
            _step("b", 2, "limit", inputs=["a"]),
            _step("c", 3, "limit", inputs=["b"]),
        ]
        with pytest.raises(TransformationStepError) as exc_info:
            execution_order(steps)
        assert exc_info.value.step_id == "a"
        assert set(exc_info.value.details["cycle"]) == {"a", "b", "c"}

    @pytest.mark.parametrize(
        "steps",
        [
            [_step("a", 1, "limit", inputs=["a"])],
            [_step("a", 1, "limit", inputs=["ghost"])],
            [_step("a", 1, "limit"), _step("a", 2, "limit")],
        ],
    )
    def test_bad_references(self, steps):
        with pytest.raises(TransformationStepError):
            execution_order(steps)

    def test_plan_validates_every_config(self):
        steps = [
            _step("a", 1, "limit", {"count": 5}),
            _step("b", 2, "select_columns", {"columns": []}),
        ]
        with pytest.raises(TransformationStepError) as exc_info:
            plan_transformation(steps)
        assert exc_info.value.step_id == "b"
        assert exc_info.value.operator == "select_columns"

    def test_plan_join_needs_two_inputs(self):
        steps = [
            _step("a", 1, "filter", {"column": "id", "operator": "equals", "value": 1}),
            _step("b", 2, "join", {"on": "id"}, inputs=["a"]),
        ]
        with pytest.raises(TransformationStepError):
            plan_transformation(steps)


class TestTransformationExecutor:
    """Tests for TransformationExecutor.run."""

    def test_linear_pipeline(self):
        transformation = _transformation(
            _step("s1", 1, "filter", {"column": "group", "operator": "equals", "value": "a"}),
            _step("s2", 2, "sort", {"column": "value", "direction": "DESC"}),
            _step("s3", 3, "select_columns", {"columns": ["id", "value"]}),
        )
        result = TransformationExecutor().run(transformation, ROWS)

        assert result.success
        assert result.status == RunStatus.COMPLETED
        assert [s.status for s in result.step_results] == [StepStatus.COMPLETED] * 3
        assert [s.row_count for s in result.step_results] == [5, 5, 5]
        assert result.output.data[0] == {"id": 9, "value": 90}
        assert result.output.columns == ["id", "value"]
        assert result.total_rows == 5
        assert not result.truncated

    def test_failure_halts_and_identifies_step(self):
        transformation = _transformation(
            _step("A", 1, "limit", {"count": 8}),
            _step("B", 2, "select_columns", {"columns": ["missing"]}),
            _step("C", 3, "limit", {"count": 1}),
        )
        result = TransformationExecutor().run(transformation, ROWS)

        assert result.status == RunStatus.FAILED
        assert result.output is None
        assert [s.step_id for s in result.step_results] == ["A", "B"]
        assert result.step_results[0].status == StepStatus.COMPLETED
        assert result.failed_step_id == "B"
        assert "missing" in result.failed_step.error

        with pytest.raises(TransformationStepError) as exc_info:
            result.raise_for_status()
        assert exc_info.value.step_id == "B"
        assert exc_info.value.order == 2

    def test_invalid_plan_runs_nothing(self):
        transformation = _transformation(
            _step("A", 1, "limit", {"count": 8}),
            _step("B", 2, "pivot"),
        )
        result = TransformationExecutor().run(transformation, ROWS)
        assert result.status == RunStatus.FAILED
        assert len(result.step_results) == 1
        assert result.failed_step_id == "B"

    def test_unparseable_expression_fails_at_its_step(self):
        transformation = _transformation(
            _step("A", 1, "limit", {"count": 8}),
            _step(
                "B",
                2,
                "derived_column",
                {"column": "x", "expression": "+".join(["{value}"] * 5000)},
            ),
        )
        result = TransformationExecutor().run(transformation, ROWS)
        assert result.status == RunStatus.FAILED
        assert result.failed_step_id == "B"
        assert result.failed_step.error.startswith("Step 2 (derived_column)")

    def test_cycle_fails_before_running(self):
        transformation = _transformation(
            _step("a", 1, "limit", {"count": 1}, inputs=["b"]),
            _step("b", 2, "limit", {"count": 1}, inputs=["a"]),
        )
        result = TransformationExecutor().run(transformation, ROWS)
        assert result.status == RunStatus.FAILED
        assert len(result.step_results) == 1
        assert "Cyclic" in result.step_results[0].error

    def test_preview_truncates_only_final_output(self):
        transformation = _transformation(
            _step("s1", 1, "sort", {"column": "value", "direction": "DESC"}),
            _step(
                "s2",
                2,
                "aggregate",
                {"aggregations": [{"column": "value", "function": "sum"}]},
            ),
        )
        preview = TransformationExecutor().run(transformation, ROWS, preview_rows=3)
        # The aggregate saw all 10 rows
        assert preview.output.data == [{"sum_value": 550.0}]
        assert not preview.truncated

        transformation = _transformation(_step("s1", 1, "sort", {"column": "id"}))
        preview = TransformationExecutor().run(transformation, ROWS, preview_rows=3)
        assert preview.truncated
        assert preview.total_rows == 10
        assert preview.output.row_count == 3
        assert [r["id"] for r in preview.output.data] == [1, 2, 3]

    def test_inactive_step_passes_rows_through(self):
        transformation = _transformation(
            _step("s1", 1, "limit", {"count": 2}, active=False),
            _step("s2", 2, "select_columns", {"columns": ["id"]}),
        )
        result = TransformationExecutor().run(transformation, ROWS)
        assert result.step_results[0].status == StepStatus.SKIPPED
        assert result.output.row_count == 10

    def test_inactive_step_config_is_not_validated(self):
        transformation = _transformation(_step("s1", 1, "pivot", active=False))
        assert TransformationExecutor().run(transformation, ROWS).success

    def test_dag_join(self):
        transformation = _transformation(
            _step("odd", 1, "filter", {"column": "group", "operator": "equals", "value": "a"}),
            _step(
                "totals",
                2,
                "aggregate",
                {"group_by": ["group"], "aggregations": [{"function": "count", "alias": "n"}]},
            ),
            _step("joined", 3, "join", {"on": "group"}, inputs=["odd", "totals"]),
        )
        result = TransformationExecutor().run(transformation, ROWS)
        assert result.success
        assert result.output.row_count == 5
        assert all(r["n"] == 5 for r in result.output.data)

    def test_no_steps_returns_source_rows(self):
        result = TransformationExecutor().run(_transformation(), ROWS)
        assert result.success
        assert result.output.row_count == 10

    def test_source_rows_are_not_mutated(self):
        before = [dict(r) for r in ROWS]
        fill = {"strategy": "constant", "value": 0}
        run_steps([{"id": "s", "order": 1, "operator": "fill_nulls", "config": fill}], ROWS)
        assert ROWS == before


class TestRunSteps:
    """Tests for ad hoc step lists."""

    def test_dict_steps(self):
        result = run_steps(
            [
                {
                    "id": "s1",
                    "order": 1,
                    "operator": "where",
                    "config": {"column": "id", "operator": "lessThan", "value": 4},
                },
                {
                    "id": "s2",
                    "order": 2,
                    "operator": "derived_column",
                    "config": {"column": "double", "expression": "{value} * 2"},
                },
            ],
            ROWS,
            preview_rows=2,
        )
        assert result.success
        assert result.total_rows == 3
        assert result.output.data[1]["double"] == 40.0

    def test_to_dict(self):
        steps = [{"id": "s1", "order": 1, "operator": "limit", "config": {"count": 1}}]
        result = run_steps(steps, ROWS)
        body = result.to_dict()
        assert body["status"] == "completed"
        assert body["failed_step_id"] is None
        assert body["steps"][0]["status"] == "completed"
        assert body["output"]["schema"][0] == {"name": "id", "type": "number", "nullable": False}
