"""Pydantic schemas for admin job endpoints."""

from datetime import datetime
from typing import Optional

from schemas.common import CamelModel


class CleanupReportResponse(CamelModel):
    checked: int
    orphaned: int
    deleted_local: int
    deleted_remote: int
    remote_failures: int
    skipped: int
    errors: list[str]


class JobStatusResponse(CamelModel):
    enabled: bool
    running: bool
    interval_seconds: float
    run_count: int
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_report: Optional[CleanupReportResponse] = None
    last_error: Optional[str] = None
