"""Admin-only job endpoints."""

import logging

from fastapi import APIRouter, Depends

from api.deps import get_cleanup_scheduler, require_admin, require_csrf
from schemas.admin import CleanupReportResponse, JobStatusResponse
from services.cleanup_scheduler import CleanupScheduler
from services.errors import ErrorCode, FlintError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/jobs/orphan-cleanup", response_model=JobStatusResponse)
def orphan_cleanup_status(scheduler: CleanupScheduler = Depends(get_cleanup_scheduler)):
    """Snapshot of the orphaned-identity sweep."""
    return JobStatusResponse.model_validate(scheduler.status())


@router.post(
    "/jobs/orphan-cleanup/run",
    response_model=CleanupReportResponse,
    dependencies=[Depends(require_csrf)],
)
def run_orphan_cleanup(scheduler: CleanupScheduler = Depends(get_cleanup_scheduler)):
    """Run one sweep now."""
    report = scheduler.run_once()
    if report is None:
        status = scheduler.status()
        if status.last_error and not status.running:
            raise FlintError(ErrorCode.INTERNAL_ERROR, "The cleanup sweep failed. Check the job status.")
        raise FlintError(
            ErrorCode.SERVICE_UNAVAILABLE,
            "A cleanup sweep is already running.",
            retry_after=60,
        )
    logger.info("Orphan cleanup run triggered manually")
    return CleanupReportResponse.model_validate(report)
