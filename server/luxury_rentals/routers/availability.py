"""Availability router for bookability checks, calendars and temporary holds."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.availability import (
    AvailabilityCalendar,
    AvailabilityCalendarRequest,
    AvailabilityResult,
    CheckAvailabilityRequest,
    CheckMultipleAvailabilityRequest,
    CreateTemporaryReservationRequest,
    MultiAvailabilityResult,
    TemporaryReservation,
)
from ..services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/availability", tags=["availability"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


@router.post("/check", response_model=AvailabilityResult)
async def check_availability(
    request: CheckAvailabilityRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Check whether one item can be booked for a date range.

    Unavailable items are a normal 200 response carrying a reason code.
    """
    service = AvailabilityService(db)
    result = await service.check_availability(
        request.item_id,
        request.start_date,
        request.end_date,
        exclude_booking_id=request.exclude_booking_id,
    )
    return JSONResponse(status_code=200, content=result.model_dump(mode="json"))


@router.post("/check-multiple", response_model=MultiAvailabilityResult)
async def check_multiple_availability(
    request: CheckMultipleAvailabilityRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Check up to 50 items for the same date range."""
    service = AvailabilityService(db)
    result = await service.check_multiple_availability(request.item_ids, request.start_date, request.end_date)

    logger.info(
        "Multiple availability checked",
        extra={
            "requested": result.summary.total,
            "available": result.summary.available,
        }
    )

    return JSONResponse(status_code=200, content=result.model_dump(mode="json"))


@router.post("/calendar", response_model=AvailabilityCalendar)
async def get_availability_calendar(
    request: AvailabilityCalendarRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Bookings, live holds and blackout periods for an item within a range."""
    service = AvailabilityService(db)

    try:
        calendar = await service.get_availability_calendar(request.item_id, request.start_date, request.end_date)
        return JSONResponse(status_code=200, content=calendar.model_dump(mode="json"))

    except ProblemDetailsException:
        raise
    except Exception as e:
        logger.error(
            "Unexpected error building availability calendar",
            extra={"item_id": request.item_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError(detail="Failed to build availability calendar")


@router.post("/hold", response_model=TemporaryReservation, status_code=201)
async def create_temporary_reservation(
    request: CreateTemporaryReservationRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Hold an item for a short checkout window.

    The hold blocks conflicting requests until it expires or is converted
    into a booking via `hold_id` on booking creation.
    """
    service = AvailabilityService(db)

    try:
        reservation = await service.create_temporary_reservation(
            request.item_id,
            request.start_date,
            request.end_date,
            request.requester_id,
            duration_minutes=request.duration_minutes,
        )
        return JSONResponse(status_code=201, content=reservation.model_dump(mode="json"))

    except ProblemDetailsException:
        raise
    except Exception as e:
        logger.error(
            "Unexpected error creating temporary reservation",
            extra={"item_id": request.item_id, "requester_id": request.requester_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError(detail="Failed to create temporary reservation")
