"""Thread-safe connection management for the metadata store + DuckDB.

- SQLAlchemy sync sessions (one per call via session_scope)
- DuckDB cursors for file parsing (one connection, one cursor per caller)

Usage:
    from reportstudio.core.connections import ConnectionManager, ConnectionConfig

    manager = ConnectionManager(ConnectionConfig.from_settings(get_settings()))
    manager.initialize()

    with manager.session_scope() as session:
        session.add(...)

    with manager.duckdb_cursor() as cursor:
        rows = cursor.execute("SELECT * FROM read_csv(?)", [path]).fetchall()

    manager.close()
"""

from __future__ import annotations

import threading
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

import duckdb
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from reportstudio.core.config import Settings
from reportstudio.core.logging import get_logger
from reportstudio.storage import create_metadata_engine, init_database

logger = get_logger(__name__)


@dataclass
class ConnectionConfig:
    """Connection configuration.

    Attributes:
        database_url: SQLAlchemy URL of the metadata store
        duckdb_memory_limit: DuckDB memory limit (e.g., "1GB")
        create_schema: Create missing metadata tables on initialize
        echo_sql: Whether to echo SQL statements (for debugging)
    """

    database_url: str = "sqlite:///:memory:"
    duckdb_memory_limit: str = "1GB"
    create_schema: bool = True
    echo_sql: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> ConnectionConfig:
        """Create config from engine settings."""
        return cls(
            database_url=settings.database_url,
            duckdb_memory_limit=settings.duckdb_memory_limit,
            **kwargs,
        )

    @classmethod
    def in_memory(cls, **kwargs: Any) -> ConnectionConfig:
        """Create config for in-memory databases (useful for testing)."""
        return cls(database_url="sqlite:///:memory:", **kwargs)


@dataclass
class ConnectionManager:
    """Owns the metadata engine and the in-process DuckDB connection.

    Thread Safety:
    - SQLAlchemy sessions: one session per session_scope() call
    - DuckDB: each duckdb_cursor() call gets its own cursor
    - Commits serialized via _commit_lock (SQLite allows one writer)
    """

    config: ConnectionConfig = field(default_factory=ConnectionConfig)
    _engine: Engine | None = field(default=None, init=False, repr=False)
    _session_factory: sessionmaker[Session] | None = field(default=None, init=False, repr=False)
    _duckdb_conn: duckdb.DuckDBPyConnection | None = field(default=None, init=False, repr=False)
    _commit_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _init_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _initialized: bool = field(default=False, init=False, repr=False)

    def initialize(self) -> None:
        """Initialize the metadata engine and DuckDB connection.

        Safe to call multiple times (idempotent).

        Raises:
            RuntimeError: If initialization fails
        """
        with self._init_lock:
            if self._initialized:
                return

            try:
                self._engine = create_metadata_engine(
                    self.config.database_url, echo=self.config.echo_sql
                )
                if self.config.create_schema:
                    init_database(self._engine)
                self._session_factory = sessionmaker(self._engine, expire_on_commit=False)

                self._duckdb_conn = duckdb.connect(":memory:")
                self._duckdb_conn.execute(f"SET memory_limit='{self.config.duckdb_memory_limit}'")
                self._initialized = True
            except Exception as e:
                self.close()
                raise RuntimeError(f"Failed to initialize connections: {e}") from e

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError(
                "ConnectionManager not initialized. Call manager.initialize() first."
            )

    @contextmanager
    def session_scope(self) -> Generator[Session]:
        """Get a session with automatic commit/rollback.

        Yields:
            Session bound to the metadata engine

        Raises:
            RuntimeError: If manager not initialized
        """
        self._ensure_initialized()
        assert self._session_factory is not None

        session = self._session_factory()
        try:
            yield session
            with self._commit_lock:
                session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def duckdb_cursor(self) -> Generator[duckdb.DuckDBPyConnection]:
        """Get a DuckDB cursor.

        Yields:
            DuckDB cursor, closed on exit

        Raises:
            RuntimeError: If manager not initialized
        """
        self._ensure_initialized()
        assert self._duckdb_conn is not None

        cursor = self._duckdb_conn.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    @property
    def engine(self) -> Engine:
        """The metadata SQLAlchemy engine."""
        self._ensure_initialized()
        assert self._engine is not None
        return self._engine

    def close(self) -> None:
        """Close all connections. Safe to call multiple times."""
        if self._duckdb_conn is not None:
            try:
                self._duckdb_conn.close()
            except duckdb.Error as e:
                logger.warning("duckdb_close_failed", error=str(e))
            self._duckdb_conn = None

        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

        self._session_factory = None
        self._initialized = False


__all__ = ["ConnectionConfig", "ConnectionManager"]
