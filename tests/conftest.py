"""Shared pytest fixtures for all tests."""

import json
from pathlib import Path

import pandas as pd
import pytest
from sqlalchemy import create_engine, text

from reportstudio.core.config import Settings
from reportstudio.core.connections import ConnectionConfig, ConnectionManager
from reportstudio.sources.null_values import load_null_value_config


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with small row caps, independent of the environment."""
    return Settings(
        database_url="sqlite:///:memory:",
        max_query_rows=50,
        default_fetch_limit=20,
        cache_ttl_seconds=60,
        profile_sample_size=0,
        preview_rows=5,
    )


@pytest.fixture
def manager() -> ConnectionManager:
    """In-memory metadata store + DuckDB, schema created."""
    mgr = ConnectionManager(ConnectionConfig.in_memory())
    mgr.initialize()
    yield mgr
    mgr.close()


@pytest.fixture
def null_config():
    return load_null_value_config()


@pytest.fixture
def orders_records() -> list[dict]:
    return [
        {"id": "1", "customer": "Acme", "amount": "120.5", "region": "north"},
        {"id": "2", "customer": "Globex", "amount": "80", "region": "south"},
        {"id": "3", "customer": "Initech", "amount": "NULL", "region": "north"},
        {"id": "4", "customer": "acme corp", "amount": "300", "region": "east"},
        {"id": "5", "customer": "Umbrella", "amount": "45", "region": "south"},
    ]


@pytest.fixture
def csv_file(tmp_path: Path, orders_records: list[dict]) -> Path:
    path = tmp_path / "orders.csv"
    lines = ["id,customer,amount,region"]
    lines += [",".join(r.values()) for r in orders_records]
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def json_file(tmp_path: Path) -> Path:
    path = tmp_path / "customers.json"
    payload = {
        "meta": {"count": 2},
        "customers": [
            {"id": 1, "name": "Acme", "address": {"city": "Berlin", "zip": "10115"}},
            {"id": 2, "name": "Globex", "address": {"city": "Paris", "zip": "75001"}},
        ],
    }
    path.write_text(json.dumps(payload))
    return path


@pytest.fixture
def xlsx_file(tmp_path: Path) -> Path:
    path = tmp_path / "budget.xlsx"
    df = pd.DataFrame(
        {
            "department": ["Sales", "HR", "Ops"],
            "budget": [1000, 250, None],
        }
    )
    df.to_excel(path, index=False)
    return path


@pytest.fixture
def sqlite_path(tmp_path: Path) -> Path:
    """SQLite file with an ``orders`` table of 30 rows."""
    path = tmp_path / "warehouse.sqlite"
    engine = create_engine(f"sqlite:///{path}")
    with engine.begin() as conn:
        conn.execute(
            text("CREATE TABLE orders (id INTEGER PRIMARY KEY, customer TEXT, amount REAL)")
        )
        for i in range(1, 31):
            amount = None if i % 10 == 0 else float(i * 10)
            conn.execute(
                text("INSERT INTO orders (id, customer, amount) VALUES (:id, :c, :a)"),
                {"id": i, "c": f"customer-{i:02d}", "a": amount},
            )
    engine.dispose()
    return path
