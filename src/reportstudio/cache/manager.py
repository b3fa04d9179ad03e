"""In-process cache with per-entry TTL and single-flight computation.

Guarantees:
- A hit (``now < expires_at``) never invokes the compute function.
- At most one computation per key is in flight. Concurrent callers for the
  same key block on that computation and share its result or its error.
- A failed computation stores nothing and leaves any previous entry as is.
- Entries are replaced wholesale, never updated in place.

A daemon thread sweeps expired entries on a fixed interval once
``start()`` is called.
"""

from __future__ import annotations

import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from reportstudio.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


class Cache(Protocol):
    """Contract consumed by the engine; fakes implement the same methods."""

    def get_or_set(self, key: str, compute: Callable[[], T], ttl: float | None = None) -> T: ...

    def delete(self, key: str) -> bool: ...

    def delete_pattern(self, pattern: str) -> int: ...

    def clear(self) -> None: ...


@dataclass(frozen=True)
class CacheEntry:
    """A stored value with its absolute expiry."""

    key: str
    value: Any
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class _Flight:
    """One in-flight computation shared by every caller of a key."""

    done: threading.Event = field(default_factory=threading.Event)
    value: Any = None
    error: BaseException | None = None
    invalidated: bool = False


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    computations: int = 0
    failures: int = 0
    shared_waits: int = 0
    expired_swept: int = 0
    entries: int = 0
    in_flight: int = 0

    def to_dict(self) -> dict[str, int]:
        return dict(self.__dict__)


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Glob pattern where ``*`` is the only wildcard."""
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")))


class CacheManager:
    """Key-addressed TTL cache, safe for concurrent use.

    Args:
        default_ttl: TTL in seconds when a call passes none
        sweep_interval: Seconds between background sweeps
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        sweep_interval: float = 300.0,
        clock: Clock = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, CacheEntry] = {}
        self._flights: dict[str, _Flight] = {}
        self._stats = CacheStats()
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    @classmethod
    def from_settings(cls, settings: Any) -> CacheManager:
        return cls(
            default_ttl=settings.cache_ttl_seconds,
            sweep_interval=settings.cache_sweep_interval_seconds,
        )

    # === Reads and writes ===

    def _live_entry(self, key: str, now: float) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(now):
            del self._entries[key]
            return None
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        """Stored value if present and unexpired, else ``default``."""
        with self._lock:
            entry = self._live_entry(key, self._clock())
            if entry is None:
                self._stats.misses += 1
                return default
            self._stats.hits += 1
            return entry.value

    def contains(self, key: str) -> bool:
        with self._lock:
            return self._live_entry(key, self._clock()) is not None

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value, replacing any previous entry."""
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            now = self._clock()
            self._entries[key] = CacheEntry(key, value, now, now + ttl)

    def get_or_set(self, key: str, compute: Callable[[], T], ttl: float | None = None) -> T:
        """Return the cached value or compute, store and return it.

        Concurrent callers for a key with a computation in flight wait for
        it instead of computing again.

        Raises:
            Whatever ``compute`` raises; nothing is stored in that case
        """
        with self._lock:
            entry = self._live_entry(key, self._clock())
            if entry is not None:
                self._stats.hits += 1
                return entry.value  # type: ignore[no-any-return]
            self._stats.misses += 1
            flight = self._flights.get(key)
            if flight is not None:
                self._stats.shared_waits += 1
                leader = False
            else:
                flight = self._flights[key] = _Flight()
                leader = True

        if not leader:
            return self._await(flight)
        return self._compute(key, flight, compute, ttl)

    def refresh(self, key: str, compute: Callable[[], T], ttl: float | None = None) -> T:
        """Recompute and replace an entry regardless of its age.

        On failure the previous entry stays untouched and the error is raised.
        """
        with self._lock:
            flight = self._flights.get(key)
            if flight is not None:
                self._stats.shared_waits += 1
                leader = False
            else:
                flight = self._flights[key] = _Flight()
                leader = True
        if not leader:
            return self._await(flight)
        return self._compute(key, flight, compute, ttl)

    def _await(self, flight: _Flight) -> Any:
        flight.done.wait()
        if flight.error is not None:
            raise flight.error
        return flight.value

    def _compute(
        self, key: str, flight: _Flight, compute: Callable[[], T], ttl: float | None
    ) -> T:
        ttl = self.default_ttl if ttl is None else ttl
        try:
            value = compute()
        except BaseException as e:
            with self._lock:
                self._stats.failures += 1
                self._flights.pop(key, None)
            flight.error = e
            flight.done.set()
            logger.debug("cache_compute_failed", key=key, error=str(e))
            raise

        with self._lock:
            self._stats.computations += 1
            if not flight.invalidated:
                now = self._clock()
                self._entries[key] = CacheEntry(key, value, now, now + ttl)
            self._flights.pop(key, None)
        flight.value = value
        flight.done.set()
        return value

    # === Invalidation ===

    def delete(self, key: str) -> bool:
        """Remove one key. An in-flight computation for it will not be stored."""
        with self._lock:
            flight = self._flights.get(key)
            if flight is not None:
                flight.invalidated = True
            return self._entries.pop(key, None) is not None

    def delete_pattern(self, pattern: str) -> int:
        """Remove every key matching a ``*`` glob; returns the number removed."""
        regex = compile_pattern(pattern)
        with self._lock:
            for key, flight in self._flights.items():
                if regex.fullmatch(key):
                    flight.invalidated = True
            matched = [k for k in self._entries if regex.fullmatch(k)]
            for key in matched:
                del self._entries[key]
        if matched:
            logger.debug("cache_pattern_deleted", pattern=pattern, count=len(matched))
        return len(matched)

    def clear(self) -> None:
        with self._lock:
            for flight in self._flights.values():
                flight.invalidated = True
            self._entries.clear()

    def sweep_expired(self) -> int:
        """Remove expired entries; returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._stats.expired_swept += len(expired)
        if expired:
            logger.debug("cache_swept", removed=len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                **{
                    **self._stats.to_dict(),
                    "entries": len(self._entries),
                    "in_flight": len(self._flights),
                }
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # === Background sweep ===

    def start(self) -> None:
        """Start the background sweeper (idempotent)."""
        with self._lock:
            if self._sweeper is not None and self._sweeper.is_alive():
                return
            self._stop.clear()
            self._sweeper = threading.Thread(
                target=self._sweep_loop, name="reportstudio-cache-sweeper", daemon=True
            )
            self._sweeper.start()
        logger.info("cache_sweeper_started", interval_seconds=self.sweep_interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the background sweeper."""
        self._stop.set()
        sweeper = self._sweeper
        if sweeper is not None:
            sweeper.join(timeout)
        self._sweeper = None

    @property
    def running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.sweep_interval):
            try:
                self.sweep_expired()
            except Exception:
                logger.exception("cache_sweep_failed")
