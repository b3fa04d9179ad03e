"""Connector for relational data sources.

Connections are opened per call and disposed afterwards, so decrypted
credentials live only as long as the connector instance that received them.
"""

from __future__ import annotations

import threading
import time
from datetime import date, datetime, time as dt_time
from decimal import Decimal
from typing import Any

from pydantic import BaseModel
from sqlalchemy import URL, Connection, Engine, create_engine, inspect, make_url
from sqlalchemy.exc import ArgumentError, DBAPIError, NoSuchModuleError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from reportstudio.core.errors import QueryExecutionError, SourceConnectionError, ValidationError
from reportstudio.core.logging import get_logger
from reportstudio.core.models import DatabaseProvider, SourceKind
from reportstudio.sources.base import ConnectorBase, FetchOptions, FetchResult
from reportstudio.sources.database.query_builder import build_count, build_select
from reportstudio.sources.database.safety import check_query_safety
from reportstudio.storage.query_log import QueryExecutionLogWriter, QueryLogEntry, truncate_query

logger = get_logger(__name__)

_DRIVERS = {
    DatabaseProvider.POSTGRESQL: "postgresql+psycopg",
    DatabaseProvider.MYSQL: "mysql+pymysql",
    DatabaseProvider.SQLSERVER: "mssql+pyodbc",
    DatabaseProvider.SQLITE: "sqlite",
    DatabaseProvider.DUCKDB: "duckdb",
}

_DEFAULT_PORTS = {
    DatabaseProvider.POSTGRESQL: 5432,
    DatabaseProvider.MYSQL: 3306,
    DatabaseProvider.SQLSERVER: 1433,
}


class ConnectionTestResult(BaseModel):
    """Outcome of a connectivity check."""

    success: bool
    message: str
    latency_ms: float | None = None


class QueryResult(BaseModel):
    """Rows returned by a raw query."""

    columns: list[str]
    rows: list[list[Any]]
    row_count: int
    latency_ms: float
    truncated: bool = False


def build_url(provider: DatabaseProvider, config: dict[str, Any]) -> URL:
    """SQLAlchemy URL from a decrypted connection descriptor.

    The descriptor carries either ``url`` or discrete fields
    (host, port, database, username, password, driver, options).
    """
    if config.get("url"):
        return make_url(config["url"])

    drivername = config.get("driver") or _DRIVERS[provider]
    if provider in (DatabaseProvider.SQLITE, DatabaseProvider.DUCKDB):
        return URL.create(drivername, database=config.get("path") or config.get("database"))

    if not config.get("host"):
        raise ValidationError(
            "Connection descriptor is missing 'host'",
            expected={"host": "str", "port": "int", "database": "str", "username": "str"},
        )
    return URL.create(
        drivername,
        username=config.get("username") or config.get("user"),
        password=config.get("password"),
        host=config["host"],
        port=int(config.get("port") or _DEFAULT_PORTS[provider]),
        database=config.get("database"),
        query=config.get("options") or {},
    )


def to_plain(value: Any) -> Any:
    """Convert driver values to JSON-compatible scalars."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime | date | dt_time):
        return value.isoformat()
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value).hex()
    return value


class DatabaseConnector(ConnectorBase):
    """Fetches pages and runs raw read-only queries against one relational source.

    Args:
        provider: Relational provider
        connection_config: Decrypted connection descriptor
        max_rows: System row cap
        default_limit: Limit used when options carry none
        query_timeout_seconds: Raw query timeout
        query_log_max_chars: Truncation length for logged query text
        query_log_writer: Optional execution log sink
        tenant_id: Owner tenant, for logs
        data_source_id: Source identity, for logs
        table_name: Default table for fetch()
    """

    kind = SourceKind.DATABASE

    def __init__(
        self,
        provider: DatabaseProvider | str,
        connection_config: dict[str, Any],
        max_rows: int,
        default_limit: int,
        query_timeout_seconds: float = 30.0,
        query_log_max_chars: int = 1000,
        query_log_writer: QueryExecutionLogWriter | None = None,
        tenant_id: str = "",
        data_source_id: str | None = None,
        table_name: str | None = None,
    ):
        try:
            self.provider = DatabaseProvider(str(provider).upper())
        except ValueError as e:
            raise ValidationError(
                f"Unsupported database provider: {provider}",
                expected={"provider": [p.value for p in DatabaseProvider]},
            ) from e
        self._config = connection_config
        self.max_rows = max_rows
        self.default_limit = default_limit
        self.query_timeout_seconds = query_timeout_seconds
        self.query_log_max_chars = query_log_max_chars
        self.query_log_writer = query_log_writer
        self.tenant_id = tenant_id
        self.data_source_id = data_source_id
        self.table_name = table_name

    def _create_engine(self) -> Engine:
        try:
            return create_engine(build_url(self.provider, self._config), poolclass=NullPool)
        except (ArgumentError, NoSuchModuleError, ImportError) as e:
            logger.warning(
                "database_engine_failed",
                provider=self.provider.value,
                data_source_id=self.data_source_id,
                error=str(e),
            )
            raise SourceConnectionError("Could not connect to data source") from e

    def _connect(self, engine: Engine) -> Connection:
        try:
            return engine.connect()
        except (DBAPIError, SQLAlchemyError) as e:
            # Provider detail goes to the log only
            logger.warning(
                "database_connect_failed",
                provider=self.provider.value,
                data_source_id=self.data_source_id,
                error=str(e).splitlines()[0] if str(e) else type(e).__name__,
            )
            raise SourceConnectionError("Could not connect to data source") from e

    def test_connection(self) -> ConnectionTestResult:
        """Open a connection and run a trivial query. Never raises."""
        start = time.perf_counter()
        try:
            engine = self._create_engine()
            try:
                with self._connect(engine) as conn:
                    conn.exec_driver_sql("SELECT 1").fetchall()
            finally:
                engine.dispose()
        except SourceConnectionError as e:
            return ConnectionTestResult(success=False, message=e.message)
        except SQLAlchemyError:
            return ConnectionTestResult(success=False, message="Connection test query failed")
        latency = (time.perf_counter() - start) * 1000
        return ConnectionTestResult(
            success=True, message="Connection successful", latency_ms=latency
        )

    def list_tables(self, schema: str | None = None) -> list[str]:
        """Tables and views visible to the connection."""
        engine = self._create_engine()
        try:
            with self._connect(engine) as conn:
                inspector = inspect(conn)
                names = inspector.get_table_names(schema=schema)
                names += inspector.get_view_names(schema=schema)
            return sorted(set(names))
        except SQLAlchemyError as e:
            logger.warning("list_tables_failed", provider=self.provider.value, error=str(e))
            raise QueryExecutionError("Could not list tables") from e
        finally:
            engine.dispose()

    def fetch(self, options: FetchOptions, table_name: str | None = None) -> FetchResult:
        """Fetch one page of a table using a generated, parameterized SELECT."""
        name = table_name or self.table_name
        if not name:
            raise ValidationError("No table selected for database fetch", expected="table_name")

        limit = options.effective_limit(self.max_rows, self.default_limit)
        stmt = build_select(
            name,
            options,
            limit,
            require_order_for_offset=self.provider == DatabaseProvider.SQLSERVER,
        )
        engine = self._create_engine()
        try:
            with self._connect(engine) as conn:
                result = conn.execute(stmt)
                columns = list(result.keys())
                rows = [[to_plain(v) for v in row] for row in result.fetchmany(limit)]
                result.close()
                total = conn.execute(build_count(name, options)).scalar_one()
        except SQLAlchemyError as e:
            logger.warning(
                "database_fetch_failed",
                provider=self.provider.value,
                table=name,
                error=str(e).splitlines()[0] if str(e) else type(e).__name__,
            )
            raise QueryExecutionError("Failed to read from data source", {"table": name}) from e
        finally:
            engine.dispose()

        return FetchResult(columns=columns, rows=rows, row_count=len(rows), total_count=total)

    def _arm_timeout(self, conn: Connection) -> threading.Timer | None:
        """Apply the query timeout for this provider.

        Server-side settings where the provider has one, otherwise a timer
        that interrupts the DBAPI connection.
        """
        ms = int(self.query_timeout_seconds * 1000)
        if self.provider == DatabaseProvider.POSTGRESQL:
            conn.exec_driver_sql(f"SET statement_timeout = {ms}")
            return None
        if self.provider == DatabaseProvider.MYSQL:
            conn.exec_driver_sql(f"SET SESSION max_execution_time = {ms}")
            return None

        dbapi_conn = conn.connection.dbapi_connection
        if self.provider == DatabaseProvider.SQLSERVER:
            dbapi_conn.timeout = int(self.query_timeout_seconds)  # type: ignore[union-attr]
            return None
        interrupt = getattr(dbapi_conn, "interrupt", None)
        if interrupt is None:
            return None
        timer = threading.Timer(self.query_timeout_seconds, interrupt)
        timer.daemon = True
        timer.start()
        return timer

    def execute_query(
        self,
        query: str,
        limit: int | None = None,
        user_id: str | None = None,
    ) -> QueryResult:
        """Run a raw read-only query.

        The denylist check happens before any connection is opened. The query
        text is sent unchanged; at most ``min(limit, max_rows)`` rows are
        read from the cursor.

        Raises:
            UnsafeQueryError: Leading keyword is a write/DDL statement
            ValidationError: Negative limit
            SourceConnectionError: Source unreachable
            QueryExecutionError: Query failed or timed out
        """
        check_query_safety(query)
        if limit is not None and limit < 0:
            raise ValidationError(
                f"Query limit must be non-negative, got {limit}",
                expected={"limit": f"int in [0, {self.max_rows}]"},
            )
        effective = min(limit if limit is not None else self.default_limit, self.max_rows)

        start = time.perf_counter()
        try:
            engine = self._create_engine()
        except SourceConnectionError as e:
            self._log_execution(query, 0, 0.0, user_id, error=e.code)
            raise
        timer: threading.Timer | None = None
        try:
            try:
                conn = self._connect(engine)
            except SourceConnectionError as e:
                latency = (time.perf_counter() - start) * 1000
                self._log_execution(query, 0, latency, user_id, error=e.code)
                raise
            with conn:
                timer = self._arm_timeout(conn)
                result = conn.exec_driver_sql(query)
                columns = list(result.keys()) if result.returns_rows else []
                fetched = result.fetchmany(effective + 1) if result.returns_rows else []
                result.close()
        except SQLAlchemyError as e:
            latency = (time.perf_counter() - start) * 1000
            timed_out = latency >= self.query_timeout_seconds * 1000
            logger.warning(
                "query_failed",
                provider=self.provider.value,
                data_source_id=self.data_source_id,
                query=truncate_query(query, self.query_log_max_chars),
                latency_ms=round(latency, 2),
                timed_out=timed_out,
                error=str(e).splitlines()[0] if str(e) else type(e).__name__,
            )
            self._log_execution(query, 0, latency, user_id, error=type(e).__name__)
            message = "Query exceeded the time limit" if timed_out else "Query execution failed"
            raise QueryExecutionError(message, {"timed_out": timed_out}) from e
        finally:
            if timer is not None:
                timer.cancel()
            engine.dispose()

        latency = (time.perf_counter() - start) * 1000
        truncated = len(fetched) > effective
        rows = [[to_plain(v) for v in row] for row in fetched[:effective]]
        logger.info(
            "query_executed",
            provider=self.provider.value,
            data_source_id=self.data_source_id,
            rows=len(rows),
            truncated=truncated,
            latency_ms=round(latency, 2),
        )
        self._log_execution(query, len(rows), latency, user_id)
        return QueryResult(
            columns=columns,
            rows=rows,
            row_count=len(rows),
            latency_ms=latency,
            truncated=truncated,
        )

    def _log_execution(
        self,
        query: str,
        row_count: int,
        latency_ms: float,
        user_id: str | None,
        error: str | None = None,
    ) -> None:
        if self.query_log_writer is None:
            return
        self.query_log_writer.submit(
            QueryLogEntry(
                tenant_id=self.tenant_id,
                user_id=user_id,
                data_source_id=self.data_source_id,
                provider=self.provider.value,
                query_text=truncate_query(query, self.query_log_max_chars),
                row_count=row_count,
                latency_ms=latency_ms,
                success=error is None,
                error=error,
            )
        )
