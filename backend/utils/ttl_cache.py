"""Key/value cache with per-entry expiry.

Code that needs counters or short-lived values (rate limiting) depends on
the :class:`TTLCache` protocol. :class:`InMemoryTTLCache` is suitable for a
single process; a shared store is needed when several instances run.
"""

import threading
import time
from collections.abc import Callable
from typing import Any, Protocol


class TTLCache(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl_seconds: float) -> None: ...

    def increment(self, key: str, ttl_seconds: float) -> int:
        """Increment a counter, creating it with ``ttl_seconds`` if absent."""
        ...

    def ttl(self, key: str) -> float | None:
        """Seconds until ``key`` expires, or None if absent."""
        ...

    def delete(self, key: str) -> None: ...

    def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        ...


class InMemoryTTLCache:
    """Thread-safe in-process TTLCache.

    Args:
        clock: Monotonic time source; tests pass a fake clock.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._data: dict[str, tuple[Any, float]] = {}

    def _live(self, key: str) -> tuple[Any, float] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._data[key]
            return None
        return entry

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl_seconds)

    def increment(self, key: str, ttl_seconds: float) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                self._data[key] = (1, self._clock() + ttl_seconds)
                return 1
            value = int(entry[0]) + 1
            # Window is fixed from the first hit
            self._data[key] = (value, entry[1])
            return value

    def ttl(self, key: str) -> float | None:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            return entry[1] - self._clock()

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, (_, exp) in self._data.items() if exp <= now]
            for k in expired:
                del self._data[k]
            return len(expired)
