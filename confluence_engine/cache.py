"""
Result Cache

In-memory TTL cache shared by concurrent analyses. Entries expire lazily
on read; there is no background sweep. ``get_or_compute`` runs a missing
computation once per key while concurrent callers for the same key wait
for its result.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from .timing import Clock, SystemClock

logger = logging.getLogger(__name__)

_MISSING = object()


def generate_key(operation: str, **params: Any) -> str:
    """
    Deterministic composite key.

    Parameters are sorted by name and ``None`` values are dropped, so
    ``generate_key("full-analysis", symbol="EURUSD", interval="1")``
    gives ``"full-analysis|interval:1|symbol:EURUSD"``.
    """
    parts = [f"{name}:{value}" for name, value in sorted(params.items()) if value is not None]
    return "|".join([operation] + parts)


@dataclass(frozen=True)
class CacheEntry:
    """Stored value with its absolute expiry."""
    value: Any
    expires_at: datetime


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    size: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class _Flight:
    """A computation in progress for one key."""

    def __init__(self):
        self.done = threading.Event()
        self.value: Any = None
        self.error: Optional[BaseException] = None


class ResultCache:
    """
    Thread-safe TTL cache with single-flight computation.

    Parameters
    ----------
    clock : Clock, optional
        Time source used for expiry (defaults to SystemClock)
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()
        self._entries: Dict[str, Any] = {}
        self._inflight: Dict[str, _Flight] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _lookup(self, key: str) -> Any:
        """Return the live value or _MISSING. Caller holds the lock."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return _MISSING

        if not isinstance(entry, CacheEntry):
            logger.warning(f"Discarding malformed cache entry for {key}")
            del self._entries[key]
            self._misses += 1
            return _MISSING

        if self.clock.now() >= entry.expires_at:
            del self._entries[key]
            self._misses += 1
            return _MISSING

        self._hits += 1
        return entry.value

    def _store(self, key: str, value: Any, ttl: float) -> None:
        """Caller holds the lock."""
        expires_at = self.clock.now() + timedelta(seconds=ttl)
        self._entries[key] = CacheEntry(value=value, expires_at=expires_at)

    def get(self, key: str, default: Any = None) -> Any:
        """Cached value for ``key``, or ``default`` when absent or expired."""
        with self._lock:
            value = self._lookup(key)
        return default if value is _MISSING else value

    def contains(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` for ``ttl`` seconds, replacing any previous entry."""
        if ttl < 0:
            raise ValueError(f"TTL must be non-negative, got {ttl}")
        with self._lock:
            self._store(key, value, ttl)

    def get_or_compute(self, key: str, compute: Callable[[], Any], ttl: float) -> Tuple[Any, bool]:
        """
        Cached value for ``key``, computing and storing it on a miss.

        Concurrent misses on the same key run ``compute`` once; the other
        callers block until it finishes and share its value or exception.
        Nothing is stored when ``compute`` raises.

        Returns
        -------
        Tuple[Any, bool]
            (value, True if this call ran ``compute``)
        """
        if ttl < 0:
            raise ValueError(f"TTL must be non-negative, got {ttl}")

        with self._lock:
            value = self._lookup(key)
            if value is not _MISSING:
                logger.debug(f"Cache hit: {key}")
                return value, False

            flight = self._inflight.get(key)
            leader = flight is None
            if leader:
                flight = _Flight()
                self._inflight[key] = flight

        if not leader:
            logger.debug(f"Waiting on in-flight computation: {key}")
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.value, False

        logger.debug(f"Cache miss: {key}")
        try:
            value = compute()
        except BaseException as exc:
            flight.error = exc
            raise
        else:
            flight.value = value
            with self._lock:
                self._store(key, value, ttl)
            return value, True
        finally:
            with self._lock:
                self._inflight.pop(key, None)
            flight.done.set()

    def invalidate(self, key: str) -> bool:
        """Drop one entry; True if it existed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, size=len(self._entries))
