"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from reportstudio.api.main import create_app
from reportstudio.cache import CacheManager
from reportstudio.engine import ReportingEngine
from reportstudio.storage.models import Dataset, Transformation, TransformationStep

TENANT = {"X-Tenant-Id": "t1"}

ROWS = [
    {"region": "north", "amount": 100},
    {"region": "south", "amount": 50},
    {"region": "north", "amount": 300},
]


@pytest.fixture
def engine(settings, manager, csv_file):
    with manager.session_scope() as session:
        session.add(
            Dataset(dataset_id="ds-file", tenant_id="t1", name="orders", file_path=str(csv_file))
        )
    with manager.session_scope() as session:
        transformation = Transformation(
            transformation_id="tr-1",
            tenant_id="t1",
            name="south only",
            input_dataset_id="ds-file",
        )
        transformation.steps = [
            TransformationStep(
                step_id="s1",
                order=1,
                operator="filter",
                config={"column": "region", "operator": "equals", "value": "south"},
            ),
            TransformationStep(
                step_id="s2", order=2, operator="select_columns", config={"columns": ["zzz"]}
            ),
        ]
        session.add(transformation)
    eng = ReportingEngine(settings, cache=CacheManager(default_ttl=60), manager=manager)
    yield eng
    eng.close()


@pytest.fixture
def test_client(engine):
    with TestClient(create_app(engine=engine)) as client:
        yield client


class TestHealth:
    """Tests for GET /health."""

    def test_health(self, test_client: TestClient):
        response = test_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestStatistics:
    """Tests for /api/v1/statistics."""

    def test_run_function(self, test_client: TestClient):
        response = test_client.post("/api/v1/statistics/mean", json={"data": [1, 2, 3]})
        assert response.status_code == 200
        assert response.json() == {"function": "mean", "result": 2.0}

    def test_unknown_function(self, test_client: TestClient):
        """Unknown names list the available functions."""
        response = test_client.post("/api/v1/statistics/nope", json={"data": [1]})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "unknown_function"
        assert "mean" in body["details"]["expected"]["function"]

    def test_payload_mismatch(self, test_client: TestClient):
        """Shape mismatches carry the expected shape."""
        response = test_client.post("/api/v1/statistics/mean", json={"data": "abc"})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert set(body) == {"error", "message", "details"}
        assert "expected" in body["details"]

    def test_list_functions(self, test_client: TestClient):
        response = test_client.get("/api/v1/statistics/functions")
        assert response.status_code == 200
        names = [f["name"] for f in response.json()["functions"]]
        assert "mean" in names
        assert names == sorted(names)


class TestProfiling:
    """Tests for schema detection, profiling and quality over inline rows."""

    def test_detect_schema(self, test_client: TestClient):
        response = test_client.post("/api/v1/schema/detect", json={"rows": ROWS})
        assert response.status_code == 200
        assert response.json()["columns"] == [
            {"name": "region", "type": "string", "nullable": False},
            {"name": "amount", "type": "number", "nullable": False},
        ]

    def test_profile(self, test_client: TestClient):
        response = test_client.post("/api/v1/profile", json={"rows": ROWS})
        assert response.status_code == 200
        body = response.json()
        assert body["row_count"] == 3
        assert [c["name"] for c in body["columns"]] == ["region", "amount"]

    def test_positional_rows(self, test_client: TestClient):
        response = test_client.post(
            "/api/v1/profile",
            json={"rows": [["a", 1], ["b", 2]], "columns": ["label", "value"]},
        )
        assert response.status_code == 200
        assert response.json()["schema_columns"][1]["type"] == "number"

    def test_quality(self, test_client: TestClient):
        response = test_client.post("/api/v1/quality", json={"rows": ROWS})
        assert response.status_code == 200
        assert response.json()["overall_score"] == 100.0


class TestPipeline:
    """Tests for single operators and ad hoc pipelines."""

    def test_transform(self, test_client: TestClient):
        response = test_client.post(
            "/api/v1/transform",
            json={
                "operator": "filter",
                "rows": ROWS,
                "config": {"column": "amount", "operator": "greaterThan", "value": 60},
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert [r["amount"] for r in body["data"]] == [100, 300]

    def test_transform_failure_is_reported(self, test_client: TestClient):
        """Operator failures come back in the body, not as an HTTP error."""
        response = test_client.post(
            "/api/v1/transform",
            json={"operator": "select_columns", "rows": ROWS, "config": {"columns": ["x"]}},
        )
        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_preview(self, test_client: TestClient):
        response = test_client.post(
            "/api/v1/pipeline/preview",
            json={
                "rows": ROWS,
                "preview_rows": 1,
                "steps": [
                    {
                        "id": "s1",
                        "order": 1,
                        "operator": "sort",
                        "config": {"column": "amount", "direction": "desc"},
                    }
                ],
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["truncated"] is True
        assert body["output"]["data"] == [{"region": "north", "amount": 300}]

    def test_stored_run_names_failing_step(self, test_client: TestClient):
        response = test_client.post("/api/v1/transformations/tr-1/run", headers=TENANT)
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "failed"
        assert body["failed_step_id"] == "s2"

    def test_stored_preview_needs_tenant(self, test_client: TestClient):
        response = test_client.get("/api/v1/transformations/tr-1/preview")
        assert response.status_code == 422


class TestDatasets:
    """Tests for stored dataset endpoints."""

    def test_fetch(self, test_client: TestClient):
        response = test_client.post(
            "/api/v1/datasets/ds-file/fetch",
            json={"limit": 2, "columns": ["customer"]},
            headers=TENANT,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["rows"] == [["Acme"], ["Globex"]]
        assert body["total_count"] == 5

    def test_fetch_unknown_dataset(self, test_client: TestClient):
        response = test_client.post("/api/v1/datasets/nope/fetch", json={}, headers=TENANT)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_fetch_is_tenant_scoped(self, test_client: TestClient):
        response = test_client.post(
            "/api/v1/datasets/ds-file/fetch", json={}, headers={"X-Tenant-Id": "t2"}
        )
        assert response.status_code == 404

    def test_profile_and_invalidate(self, test_client: TestClient):
        response = test_client.get("/api/v1/datasets/ds-file/profile", headers=TENANT)
        assert response.status_code == 200
        assert response.json()["row_count"] == 5

        response = test_client.delete("/api/v1/datasets/ds-file/cache", headers=TENANT)
        assert response.status_code == 200
        # The profile and the page it was computed from
        assert response.json() == {"dataset_id": "ds-file", "removed": 2}

    def test_quality(self, test_client: TestClient):
        """The stored orders sample has one missing amount."""
        response = test_client.get("/api/v1/datasets/ds-file/quality", headers=TENANT)
        assert response.status_code == 200
        body = response.json()
        assert body["column_scores"]["amount"] == 80.0
        assert body["overall_score"] == 95.0


class TestQuery:
    """Tests for raw query endpoints."""

    def test_validate_allows_select(self, test_client: TestClient):
        response = test_client.post("/api/v1/query/validate", json={"sql": "select 1"})
        assert response.json() == {"allowed": True, "keyword": "SELECT", "message": None}

    def test_validate_rejects_writes(self, test_client: TestClient):
        response = test_client.post("/api/v1/query/validate", json={"sql": "DELETE FROM t"})
        body = response.json()
        assert body["allowed"] is False
        assert body["keyword"] == "DELETE"

    def test_unsafe_query_is_400(self, test_client: TestClient):
        response = test_client.post(
            "/api/v1/data-sources/any/query", json={"sql": "DROP TABLE t"}, headers=TENANT
        )
        assert response.status_code == 400
        assert response.json()["details"]["keyword"] == "DROP"
