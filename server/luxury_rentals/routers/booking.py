"""Booking router for booking lifecycle operations."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import (
    get_action_dispatcher,
    get_current_user,
    get_optional_user,
    is_staff,
    require_staff,
)
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.booking import (
    Booking,
    BookingPricing,
    CancelBookingRequest,
    CreateBookingRequest,
    GetBookingRequest,
    PaymentSummary,
    StatusHistory,
    StatusHistoryRequest,
    UpdateStatusRequest,
)
from ..services.booking_service import BookingService
from ..services.status_actions import ActionDispatcher
from ..services.status_service import BookingStatusService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
DISPATCHER_DEPENDENCY = Depends(get_action_dispatcher)
OPTIONAL_USER_DEPENDENCY = Depends(get_optional_user)
USER_DEPENDENCY = Depends(get_current_user)
STAFF_DEPENDENCY = Depends(require_staff)


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking(
        id=str(booking_model.id),
        code=booking_model.code,
        item_id=booking_model.item_id,
        item_name=booking_model.item_name,
        item_type=booking_model.item_type,
        start_at=booking_model.start_at,
        end_at=booking_model.end_at,
        status=booking_model.status,
        customer_id=str(booking_model.customer_id) if booking_model.customer_id else None,
        guest_email=booking_model.guest_email,
        pickup_location=booking_model.pickup_location,
        service_tier=booking_model.service_tier,
        pricing=BookingPricing(
            base_price=booking_model.base_price,
            rental_days=booking_model.rental_days,
            subtotal=booking_model.subtotal,
            service_fee=booking_model.service_fee,
            insurance=booking_model.insurance,
            taxes=booking_model.taxes,
            security_deposit=booking_model.security_deposit,
            total=booking_model.total,
            currency=booking_model.currency,
        ),
        payment=PaymentSummary(
            status=booking_model.payment_status,
            paid_amount=booking_model.paid_amount,
            refunded_amount=booking_model.refunded_amount,
        ),
        concierge_id=str(booking_model.concierge_id) if booking_model.concierge_id else None,
        refund_amount=booking_model.refund_amount,
        no_show_charge=booking_model.no_show_charge,
        cancelled_at=booking_model.cancelled_at,
        cancellation_reason=booking_model.cancellation_reason,
        created_at=booking_model.created_at,
        updated_at=booking_model.updated_at,
    )


def _booking_response(booking_model, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=_convert_booking_to_schema(booking_model).model_dump(mode="json")
    )


@router.post("/create", response_model=Booking, status_code=201)
async def create_booking(
    request: CreateBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    dispatcher: ActionDispatcher = DISPATCHER_DEPENDENCY,
    user: Optional[dict] = OPTIONAL_USER_DEPENDENCY
) -> JSONResponse:
    """
    Create a booking in pending-payment status.

    Authenticated customers book on their own account; anonymous callers
    and staff must provide guest details.
    """
    booking_service = BookingService(db, dispatcher)
    customer_id = user["user_id"] if user and not is_staff(user) else None

    try:
        booking = await booking_service.create_booking(request, customer_id=customer_id)
        return _booking_response(booking, status_code=201)

    except ProblemDetailsException:
        raise
    except Exception as e:
        logger.error(
            "Unexpected error during booking creation",
            extra={
                "item_id": request.item_id,
                "hold_id": request.hold_id,
                "error": str(e)
            },
            exc_info=True
        )
        raise InternalServerError(detail="Failed to create booking")


@router.post("/get", response_model=Booking)
async def get_booking(
    request: GetBookingRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Get booking details by ID."""
    booking_service = BookingService(db)

    try:
        booking = await booking_service.get_booking(request.booking_id)
        return _booking_response(booking)

    except ProblemDetailsException:
        raise
    except Exception as e:
        logger.error(
            "Unexpected error during booking retrieval",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError(detail="Failed to retrieve booking")


@router.post("/cancel", response_model=Booking)
async def cancel_booking(
    request: CancelBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    dispatcher: ActionDispatcher = DISPATCHER_DEPENDENCY,
    user: dict = USER_DEPENDENCY
) -> JSONResponse:
    """
    Cancel a booking under the customer cancellation policy.

    The refund amount follows the item type's schedule; the refund itself is
    processed in the background.
    """
    booking_service = BookingService(db, dispatcher)

    try:
        booking = await booking_service.cancel_booking(
            request.booking_id,
            actor=user["user_id"],
            reason=request.reason,
            owner_id=None if is_staff(user) else user["user_id"],
        )
        return _booking_response(booking)

    except ProblemDetailsException:
        raise
    except Exception as e:
        logger.error(
            "Unexpected error during booking cancellation",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError(detail="Failed to cancel booking")


@router.post("/status/update", response_model=Booking)
async def update_booking_status(
    request: UpdateStatusRequest,
    db: AsyncSession = DB_DEPENDENCY,
    dispatcher: ActionDispatcher = DISPATCHER_DEPENDENCY,
    user: dict = STAFF_DEPENDENCY
) -> JSONResponse:
    """
    Move a booking to a new status.

    Only transitions in the workflow table are accepted; anything else is a
    409 listing the allowed targets.
    """
    status_service = BookingStatusService(db, dispatcher)

    try:
        booking = await status_service.update_status(
            request.booking_id,
            request.status,
            actor=user["user_id"],
            reason=request.reason,
            metadata=request.metadata,
        )
        return _booking_response(booking)

    except ProblemDetailsException:
        raise
    except Exception as e:
        logger.error(
            "Unexpected error during status update",
            extra={
                "booking_id": request.booking_id,
                "requested_status": request.status.value,
                "error": str(e)
            },
            exc_info=True
        )
        raise InternalServerError(detail="Failed to update booking status")


@router.post("/status/history", response_model=StatusHistory)
async def get_status_history(
    request: StatusHistoryRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Chronological status history of a booking."""
    status_service = BookingStatusService(db)

    try:
        history = await status_service.get_status_history(request.booking_id)
        return JSONResponse(status_code=200, content=history.model_dump(mode="json"))

    except ProblemDetailsException:
        raise
    except Exception as e:
        logger.error(
            "Unexpected error reading status history",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError(detail="Failed to read status history")
