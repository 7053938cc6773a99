"""Transaction-scoped exclusive locks keyed by an arbitrary string.

Used where a row-level lock cannot work because the row does not exist yet
(first registration of a user). On PostgreSQL the lock is a transaction
advisory lock and therefore works across processes; on other backends an
in-process keyed lock serializes callers within this process.
"""

import hashlib
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import text
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

T = TypeVar("T")


def lock_id_for(key: str) -> int:
    """Stable signed 64-bit id for ``key`` (PostgreSQL advisory lock ids are bigint)."""
    digest = hashlib.md5(key.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


class LocalKeyedLock:
    """Per-key mutexes that are discarded once nobody holds or waits on them.

    Different keys never contend.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}  # key -> [lock, refcount]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)


_local_locks = LocalKeyedLock()


def with_exclusive_lock(db: Session, key: str, fn: Callable[[], T]) -> T:
    """Run ``fn`` while holding an exclusive lock on ``key``.

    The lock lives for one transaction: ``fn`` is expected to commit (which
    releases a PostgreSQL advisory lock). If ``fn`` raises, the transaction
    is rolled back before the exception propagates.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        db.execute(text("SELECT pg_advisory_xact_lock(:k)"), {"k": lock_id_for(key)})
        try:
            return fn()
        except Exception:
            db.rollback()
            raise

    with _local_locks.hold(key):
        # Drop any snapshot taken before the lock so the re-check inside fn
        # sees rows committed by the previous holder.
        db.rollback()
        try:
            return fn()
        except Exception:
            db.rollback()
            raise
