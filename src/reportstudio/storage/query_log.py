"""Fire-and-forget persistence of raw query executions.

Writes happen on a single background worker so the read that produced
the entry never waits for, or fails because of, the log write.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime

from reportstudio.core.connections import ConnectionManager
from reportstudio.core.logging import get_logger
from reportstudio.storage.models import QueryExecutionLog

logger = get_logger(__name__)

_ELLIPSIS = "..."


@dataclass(frozen=True)
class QueryLogEntry:
    """One raw query execution."""

    tenant_id: str
    query_text: str
    row_count: int
    latency_ms: float
    success: bool = True
    error: str | None = None
    user_id: str | None = None
    data_source_id: str | None = None
    provider: str | None = None
    executed_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def truncate_query(query: str, max_chars: int = 1000) -> str:
    """Truncate query text for logs; the result never exceeds ``max_chars``."""
    if len(query) <= max_chars:
        return query
    if max_chars <= len(_ELLIPSIS):
        return query[:max_chars]
    return query[: max_chars - len(_ELLIPSIS)] + _ELLIPSIS


class QueryExecutionLogWriter:
    """Persists QueryLogEntry records on a background thread.

    Usage:
        writer = QueryExecutionLogWriter(manager)
        writer.submit(entry)   # returns immediately
        writer.close()         # drains pending writes
    """

    def __init__(self, manager: ConnectionManager, max_query_chars: int = 1000):
        self.manager = manager
        self.max_query_chars = max_query_chars
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="query-log")

    def submit(self, entry: QueryLogEntry) -> Future[None] | None:
        """Queue an entry for persistence. Never raises."""
        try:
            return self._executor.submit(self._write, entry)
        except RuntimeError as e:
            # Executor already shut down
            logger.warning("query_log_submit_failed", error=str(e))
            return None

    def _write(self, entry: QueryLogEntry) -> None:
        try:
            with self.manager.session_scope() as session:
                session.add(
                    QueryExecutionLog(
                        tenant_id=entry.tenant_id,
                        user_id=entry.user_id,
                        data_source_id=entry.data_source_id,
                        provider=entry.provider,
                        query_text=truncate_query(entry.query_text, self.max_query_chars),
                        row_count=entry.row_count,
                        latency_ms=entry.latency_ms,
                        success=entry.success,
                        error=entry.error,
                        executed_at=entry.executed_at,
                    )
                )
        except Exception as e:
            logger.error(
                "query_log_write_failed",
                error=str(e),
                tenant_id=entry.tenant_id,
                data_source_id=entry.data_source_id,
            )

    def close(self, wait: bool = True) -> None:
        """Stop the worker, optionally waiting for queued writes."""
        self._executor.shutdown(wait=wait)
