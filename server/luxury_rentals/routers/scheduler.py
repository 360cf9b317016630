"""Scheduler router for triggering the automatic status sweep by hand."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..core.dependencies import get_status_scheduler, require_staff
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.scheduler import SweepSummary
from ..services.scheduler_service import StatusScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/scheduler", tags=["scheduler"])

SCHEDULER_DEPENDENCY = Depends(get_status_scheduler)
STAFF_DEPENDENCY = Depends(require_staff)


@router.post("/run", response_model=SweepSummary)
async def run_sweep(
    scheduler: StatusScheduler = SCHEDULER_DEPENDENCY,
    user: dict = STAFF_DEPENDENCY
) -> JSONResponse:
    """
    Run one automatic status sweep now.

    Returns `skipped: true` when a sweep is already in progress.
    """
    try:
        summary = await scheduler.run_sweep()
    except ProblemDetailsException:
        raise
    except Exception as e:
        logger.error("Manual sweep failed", extra={"actor": user["user_id"], "error": str(e)}, exc_info=True)
        raise InternalServerError(detail="Status sweep failed")

    logger.info(
        "Manual sweep triggered",
        extra={"actor": user["user_id"], "skipped": summary.skipped}
    )
    return JSONResponse(status_code=200, content=summary.model_dump(mode="json"))
