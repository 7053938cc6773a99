"""Periodic runner for the orphaned-identity sweep.

The scheduler owns the job's state; other modules read it only through
:meth:`CleanupScheduler.status`, which returns an immutable snapshot.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime

from sqlalchemy.orm import Session

from models.utils import utcnow
from services.orphan_cleanup_service import CleanupReport, OrphanCleanupService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobStatus:
    enabled: bool = False
    running: bool = False
    interval_seconds: float = 0
    run_count: int = 0
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    last_report: CleanupReport | None = None
    last_error: str | None = None


class CleanupScheduler:
    """Runs the sweep on a daemon thread every ``interval_seconds``."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        service_factory: Callable[[], OrphanCleanupService],
        interval_seconds: float,
    ):
        self._session_factory = session_factory
        self._service_factory = service_factory
        self._interval = interval_seconds
        self._lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._status = JobStatus(interval_seconds=interval_seconds)

    def status(self) -> JobStatus:
        with self._lock:
            return self._status

    def _update(self, **changes) -> None:
        with self._lock:
            self._status = replace(self._status, **changes)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._update(enabled=True)
        self._thread = threading.Thread(target=self._loop, name="orphan-cleanup", daemon=True)
        self._thread.start()
        logger.info("Orphan cleanup scheduled every %.0f minutes", self._interval / 60)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        self._update(enabled=False)

    def _loop(self) -> None:
        while not self._stop.wait(self._interval):
            self.run_once()

    def run_once(self) -> CleanupReport | None:
        """Run one sweep now. Returns None if a sweep is already in progress."""
        if not self._run_lock.acquire(blocking=False):
            logger.info("Orphan cleanup already running, skipping")
            return None
        try:
            self._update(running=True, last_started_at=utcnow())
            db = self._session_factory()
            try:
                report = self._service_factory().run_sweep(db)
            except Exception as e:
                logger.exception("Orphan cleanup sweep failed")
                with self._lock:
                    self._status = replace(
                        self._status,
                        running=False,
                        run_count=self._status.run_count + 1,
                        last_finished_at=utcnow(),
                        last_error=f"{type(e).__name__}: {e}",
                    )
                return None
            finally:
                db.close()
            with self._lock:
                self._status = replace(
                    self._status,
                    running=False,
                    run_count=self._status.run_count + 1,
                    last_finished_at=utcnow(),
                    last_report=report,
                    last_error=None,
                )
            return report
        finally:
            self._run_lock.release()
