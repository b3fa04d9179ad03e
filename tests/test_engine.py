"""Tests for ReportingEngine against seeded metadata."""

import json

import httpx
import pytest

from reportstudio.cache import CacheManager
from reportstudio.core.errors import (
    NotFoundError,
    SourceConnectionError,
    TransformationStepError,
    UnknownFunctionError,
    UnsafeQueryError,
    ValidationError,
)
from reportstudio.core.models import ColumnType
from reportstudio.engine import ReportingEngine
from reportstudio.pipeline.models import RunStatus
from reportstudio.storage.models import DataSource, Dataset, Transformation, TransformationStep

PRODUCTS = {"items": [{"sku": "A-1", "price": 10}, {"sku": "B-2", "price": 25}]}


def _step(step_id, order, operator, config):
    return TransformationStep(step_id=step_id, order=order, operator=operator, config=config)


@pytest.fixture
def seeded(manager, csv_file, sqlite_path):
    with manager.session_scope() as session:
        session.add_all(
            [
                DataSource(
                    data_source_id="src-db",
                    tenant_id="t1",
                    name="warehouse",
                    kind="DATABASE",
                    provider="SQLITE",
                    encrypted_config=json.dumps({"path": str(sqlite_path)}),
                ),
                DataSource(
                    data_source_id="src-off",
                    tenant_id="t1",
                    name="retired",
                    kind="DATABASE",
                    provider="SQLITE",
                    status="INACTIVE",
                ),
                DataSource(
                    data_source_id="src-api",
                    tenant_id="t1",
                    name="catalog",
                    kind="API",
                    encrypted_config=json.dumps(
                        {"url": "https://api.example.com/products", "records_path": "items"}
                    ),
                ),
            ]
        )
        session.add_all(
            [
                Dataset(
                    dataset_id="ds-file", tenant_id="t1", name="orders", file_path=str(csv_file)
                ),
                Dataset(
                    dataset_id="ds-db",
                    tenant_id="t1",
                    name="warehouse orders",
                    data_source_id="src-db",
                    table_name="orders",
                ),
                Dataset(
                    dataset_id="ds-off",
                    tenant_id="t1",
                    name="retired orders",
                    data_source_id="src-off",
                    table_name="orders",
                ),
                Dataset(
                    dataset_id="ds-api",
                    tenant_id="t1",
                    name="products",
                    data_source_id="src-api",
                ),
                Dataset(
                    dataset_id="ds-top",
                    tenant_id="t1",
                    name="top orders",
                    transformation_id="tr-top",
                ),
                Dataset(
                    dataset_id="ds-loop",
                    tenant_id="t1",
                    name="loop",
                    transformation_id="tr-loop",
                ),
            ]
        )
    with manager.session_scope() as session:
        top = Transformation(
            transformation_id="tr-top",
            tenant_id="t1",
            name="top orders",
            input_dataset_id="ds-db",
            output_dataset_id="ds-top",
        )
        top.steps = [
            _step(
                "s1", 1, "filter", {"column": "amount", "operator": "greaterThan", "value": 200}
            ),
            _step("s2", 2, "sort", {"column": "amount", "direction": "desc"}),
            _step("s3", 3, "select_columns", {"columns": ["id", "amount"]}),
        ]
        broken = Transformation(
            transformation_id="tr-broken",
            tenant_id="t1",
            name="broken",
            input_dataset_id="ds-db",
        )
        broken.steps = [
            _step("b1", 1, "limit", {"count": 5}),
            _step("b2", 2, "select_columns", {"columns": ["missing"]}),
        ]
        loop = Transformation(
            transformation_id="tr-loop",
            tenant_id="t1",
            name="loop",
            input_dataset_id="ds-loop",
        )
        session.add_all([top, broken, loop])
    return manager


@pytest.fixture
def cache():
    return CacheManager(default_ttl=60)


@pytest.fixture
def engine(settings, seeded, cache):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=PRODUCTS)

    eng = ReportingEngine(
        settings,
        cache=cache,
        credential_decryptor=json.loads,
        manager=seeded,
        http_transport=httpx.MockTransport(handler),
    )
    yield eng
    eng.close()


class TestFetchDataset:
    """Tests for fetching stored datasets."""

    def test_file_dataset(self, engine):
        result = engine.fetch_dataset(
            "t1",
            "ds-file",
            {"filters": [{"column": "amount", "operator": "greaterThan", "value": 100}]},
        )
        assert [r["customer"] for r in result.records()] == ["Acme", "acme corp"]
        assert result.total_count == 2

    def test_database_dataset_uses_default_limit(self, engine):
        result = engine.fetch_dataset("t1", "ds-db")
        assert result.row_count == 20
        assert result.total_count == 30

    def test_limit_clamped_to_system_maximum(self, engine):
        result = engine.fetch_dataset("t1", "ds-db", {"limit": 1000})
        assert result.row_count == 30

    def test_api_dataset(self, engine):
        result = engine.fetch_dataset("t1", "ds-api")
        assert result.columns == ["sku", "price"]
        assert result.row_count == 2

    def test_transformation_dataset(self, engine):
        result = engine.fetch_dataset("t1", "ds-top", {"limit": 3})
        assert result.columns == ["id", "amount"]
        assert [r["amount"] for r in result.records()] == [290.0, 280.0, 270.0]
        assert result.total_count == 9

    def test_unknown_dataset(self, engine):
        with pytest.raises(NotFoundError):
            engine.fetch_dataset("t1", "nope")

    def test_other_tenant(self, engine):
        with pytest.raises(NotFoundError):
            engine.fetch_dataset("t2", "ds-file")

    def test_inactive_source(self, engine):
        with pytest.raises(SourceConnectionError):
            engine.fetch_dataset("t1", "ds-off")

    def test_invalid_options(self, engine):
        with pytest.raises(ValidationError):
            engine.fetch_dataset("t1", "ds-file", {"limit": -1})

    def test_self_referencing_transformation(self, engine):
        with pytest.raises(TransformationStepError):
            engine.fetch_dataset("t1", "ds-loop")

    def test_missing_decryptor(self, settings, seeded, cache):
        eng = ReportingEngine(settings, cache=cache, manager=seeded)
        with pytest.raises(SourceConnectionError):
            eng.fetch_dataset("t1", "ds-db")


class TestCaching:
    """Tests for cached fetches and invalidation."""

    def test_fetch_is_cached_until_invalidated(self, engine, csv_file):
        first = engine.fetch_dataset("t1", "ds-file")
        csv_file.write_text("id,customer,amount,region\n9,Soylent,1,west\n")
        assert engine.fetch_dataset("t1", "ds-file") == first

        assert engine.invalidate_dataset("t1", "ds-file") == 1
        fresh = engine.fetch_dataset("t1", "ds-file")
        assert fresh.records() == [
            {"id": "9", "customer": "Soylent", "amount": "1", "region": "west"}
        ]

    def test_use_cache_false_bypasses(self, engine, cache):
        engine.fetch_dataset("t1", "ds-file", use_cache=False)
        assert len(cache) == 0

    def test_ad_hoc_fetch_is_not_cached(self, engine, cache, csv_file):
        result = engine.fetch_data({"kind": "FILE", "path": str(csv_file)}, options={"limit": 2})
        assert result.row_count == 2
        assert len(cache) == 0

    def test_invalidating_input_refreshes_runs(self, engine, seeded, csv_file):
        """Runs over a dataset are dropped together with the dataset."""
        with seeded.session_scope() as session:
            reader = Transformation(
                transformation_id="tr-file",
                tenant_id="t1",
                name="file rows",
                input_dataset_id="ds-file",
            )
            reader.steps = [_step("f1", 1, "limit", {"count": 10})]
            session.add(reader)

        first = engine.run_transformation("t1", "tr-file")
        assert first.total_rows == 5
        csv_file.write_text("id,customer,amount,region\n9,Soylent,1,west\n")
        assert engine.run_transformation("t1", "tr-file") is first

        # The input fetch and the run
        assert engine.invalidate_dataset("t1", "ds-file") == 2
        fresh = engine.run_transformation("t1", "tr-file")
        assert fresh.output.data == [
            {"id": "9", "customer": "Soylent", "amount": "1", "region": "west"}
        ]

    def test_invalidating_transformation_drops_output_dataset(self, engine, cache):
        engine.fetch_dataset("t1", "ds-top", {"limit": 3})
        computations = cache.stats().computations

        engine.invalidate_transformation("t1", "tr-top")
        engine.fetch_dataset("t1", "ds-top", {"limit": 3})
        # The run and the page are recomputed; the upstream fetch is still cached
        assert cache.stats().computations == computations + 2

    def test_invalidating_upstream_reaches_derived_datasets(self, engine, cache):
        engine.fetch_dataset("t1", "ds-top", {"limit": 3})
        # ds-db page, tr-top run, ds-top page
        assert engine.invalidate_dataset("t1", "ds-db") == 3
        assert len(cache) == 0

    def test_invalidation_is_tenant_scoped(self, engine, cache):
        engine.fetch_dataset("t1", "ds-file")
        assert engine.invalidate_dataset("t2", "ds-file") == 0
        assert len(cache) == 1


class TestQueries:
    """Tests for raw queries and data source helpers."""

    def test_execute_query(self, engine):
        result = engine.execute_query("t1", "src-db", "SELECT id FROM orders ORDER BY id", limit=5)
        assert result.row_count == 5
        assert result.truncated

    def test_unsafe_query_rejected_before_lookup(self, engine):
        with pytest.raises(UnsafeQueryError):
            engine.execute_query("t1", "no-such-source", "DROP TABLE orders")

    def test_unknown_source(self, engine):
        with pytest.raises(NotFoundError):
            engine.execute_query("t1", "no-such-source", "SELECT 1")

    def test_query_needs_database_source(self, engine):
        with pytest.raises(ValidationError):
            engine.execute_query("t1", "src-api", "SELECT 1")

    def test_list_tables(self, engine):
        assert engine.list_tables("t1", "src-db") == ["orders"]

    def test_connection_check(self, engine, sqlite_path, tmp_path):
        ok = engine.test_connection(
            {"kind": "DATABASE", "provider": "SQLITE"}, {"path": str(sqlite_path)}
        )
        assert ok.success
        missing = engine.test_connection({"kind": "FILE", "path": str(tmp_path / "gone.csv")})
        assert not missing.success


class TestProfiling:
    """Tests for schema detection and profiling."""

    def test_detect_schema(self, engine, orders_records):
        orders_records[2]["amount"] = None
        schema = engine.detect_schema(orders_records)
        assert [c.type for c in schema] == [
            ColumnType.NUMBER,
            ColumnType.STRING,
            ColumnType.NUMBER,
            ColumnType.STRING,
        ]

    def test_profile_dataset(self, engine):
        profile = engine.profile_dataset("t1", "ds-db")
        assert profile.row_count == 30
        assert not profile.is_sample
        assert profile.column("amount").null_count == 3

    def test_profile_is_cached(self, engine, cache):
        first = engine.profile_dataset("t1", "ds-file")
        computations = cache.stats().computations
        assert engine.profile_dataset("t1", "ds-file") is first
        assert cache.stats().computations == computations

    def test_quality_report(self, engine):
        report = engine.dataset_quality_report("t1", "ds-file")
        assert 0 <= report.overall_score <= 100

    def test_statistics_dispatch(self, engine):
        assert engine.run_function("mean", [1, 2, 3]) == 2.0
        with pytest.raises(UnknownFunctionError):
            engine.run_function("nope", [1])
        assert any(f["name"] == "mean" for f in engine.list_functions())


class TestTransformations:
    """Tests for stored transformation runs and previews."""

    def test_run(self, engine):
        result = engine.run_transformation("t1", "tr-top")
        assert result.success
        assert result.total_rows == 9
        assert result.output.data[0] == {"id": 29, "amount": 290.0}

    def test_preview_truncates_output(self, engine):
        result = engine.preview_transformation("t1", "tr-top", rows=2)
        assert result.truncated
        assert result.total_rows == 9
        assert result.output.row_count == 2

    def test_preview_uses_default_rows(self, engine):
        assert engine.preview_transformation("t1", "tr-top").output.row_count == 5

    def test_preview_rejects_non_positive_rows(self, engine):
        with pytest.raises(ValidationError):
            engine.preview_transformation("t1", "tr-top", rows=0)

    def test_failed_run_identifies_step_and_is_not_cached(self, engine, cache):
        result = engine.run_transformation("t1", "tr-broken")
        assert result.status == RunStatus.FAILED
        assert result.failed_step_id == "b2"
        # Only the input fetch was stored
        assert len(cache) == 1
        again = engine.run_transformation("t1", "tr-broken")
        assert again.failed_step_id == "b2"

    def test_run_is_cached(self, engine):
        first = engine.run_transformation("t1", "tr-top")
        assert engine.run_transformation("t1", "tr-top") is first
        assert engine.invalidate_transformation("t1", "tr-top") == 1
        assert engine.run_transformation("t1", "tr-top") is not first

    def test_unknown_transformation(self, engine):
        with pytest.raises(NotFoundError):
            engine.run_transformation("t1", "nope")

    def test_single_operator(self, engine):
        result = engine.execute_transformation("limit", [{"a": 1}, {"a": 2}], {"count": 1})
        assert result.success
        assert result.data == [{"a": 1}]
