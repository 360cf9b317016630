"""Booking service for creation, lookup and customer cancellation."""

import logging
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import acquire_transaction_lock
from ..core.exceptions import (
    AuthorizationError,
    ConflictError,
    HoldExpiredError,
    NotFoundError,
    PolicyViolationError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..core.timeutils import Clock, hours_between, isoformat_z, to_naive_utc, utcnow
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.customer import Customer, CustomerTier
from ..schemas.booking import CreateBookingRequest
from .availability_service import (
    AvailabilityService,
    allocate_booking_code,
    inventory_lock_key,
    item_summary,
    normalize_item_id,
    raise_for_unavailable,
)
from .booking_policy import (
    CANCELLATION_NOTICE_HOURS,
    RefundQuote,
    calculate_booking_charges,
    calculate_refund,
    can_be_cancelled,
)
from .status_actions import ActionDispatcher
from .status_service import BookingStatusService

logger = logging.getLogger(__name__)

BOOKING_CODE_PREFIX = "MIDAS"


def _parse_uuid(value: Union[str, UUID], resource_type: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise NotFoundError(resource_type=resource_type, resource_id=str(value))


class BookingService:
    """Service for booking-related operations."""

    def __init__(self, db: AsyncSession, dispatcher: Optional[ActionDispatcher] = None, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.availability = AvailabilityService(db, clock)
        self.status_service = BookingStatusService(db, dispatcher, clock)

    async def _get_live_hold(
        self, hold_id: str, item_id: str, request: CreateBookingRequest, customer_id: Optional[str]
    ) -> Booking:
        hold_uuid = _parse_uuid(hold_id, "temporary hold")
        stmt = select(Booking).where(Booking.id == hold_uuid, Booking.is_temporary.is_(True))
        hold = (await self.db.execute(stmt)).scalar_one_or_none()
        if hold is None:
            raise NotFoundError(resource_type="temporary hold", resource_id=hold_id)

        if hold.expires_at <= self.clock():
            logger.warning(
                "Booking creation failed - hold expired",
                extra={"hold_id": hold_id, "expired_at": isoformat_z(hold.expires_at)}
            )
            raise HoldExpiredError(hold_id, hold.expires_at)

        # Only whoever placed the hold may check out with it
        if hold.requester_ref not in {ref for ref in (customer_id, request.requester_id) if ref}:
            logger.warning(
                "Booking creation failed - hold belongs to another requester",
                extra={"hold_id": hold_id, "customer_id": customer_id}
            )
            raise AuthorizationError(detail="The temporary hold was placed by another requester")

        if (
            hold.item_id != item_id
            or hold.start_at != to_naive_utc(request.start_date)
            or hold.end_at != to_naive_utc(request.end_date)
        ):
            raise ValidationError(
                detail="The temporary hold does not match the requested item and dates",
                errors={"hold_id": hold_id},
            )
        return hold

    async def create_booking(self, request: CreateBookingRequest, customer_id: Optional[str] = None) -> Booking:
        """
        Create a booking in pending-payment status.

        Availability is re-checked under the item's advisory lock, so two
        requests for the same window cannot both succeed. A temporary hold
        named in the request is converted into the booking.

        Args:
            request: Booking creation request
            customer_id: Authenticated customer, or None for a guest booking

        Returns:
            Created booking entity

        Raises:
            ValidationError: If guest details are missing or the hold does not match
            AuthorizationError: If the hold was placed by someone else
            NotFoundError: If the item, customer or hold does not exist
            HoldExpiredError: If the hold has expired
            ConflictError: If the item is already booked
            PolicyViolationError: If the request breaks a booking policy
        """
        customer = None
        if customer_id is not None:
            customer = await self.db.get(Customer, _parse_uuid(customer_id, "customer"))
            if customer is None:
                raise NotFoundError(resource_type="customer", resource_id=customer_id)
        elif request.guest is None:
            raise ValidationError(
                detail="Guest details are required for bookings made without an account",
                errors={"guest": "required"},
            )

        item_id = normalize_item_id(request.item_id)
        start = to_naive_utc(request.start_date)
        end = to_naive_utc(request.end_date)

        await acquire_transaction_lock(self.db, inventory_lock_key(item_id))

        hold = None
        if request.hold_id:
            hold = await self._get_live_hold(request.hold_id, item_id, request, customer_id)

        result = await self.availability.check_availability(
            item_id, start, end, exclude_booking_id=hold.id if hold else None
        )
        raise_for_unavailable(result)

        item = await self.availability.get_item(item_id)
        tier = customer.tier if customer else CustomerTier.STANDARD
        charges = calculate_booking_charges(self.availability.quote(item, start, end, tier))
        quote = charges.quote
        now = self.clock()

        booking = hold if hold is not None else Booking()
        booking.code = await allocate_booking_code(self.db, BOOKING_CODE_PREFIX)
        booking.item_id = item.item_id
        booking.item_name = item.name
        booking.item_type = item.item_type
        booking.item_snapshot = item_summary(item).model_dump(mode="json")
        booking.start_at = start
        booking.end_at = end
        booking.status = BookingStatus.PENDING_PAYMENT
        booking.customer_id = customer.id if customer else None
        if customer is None:
            booking.guest_first_name = request.guest.first_name
            booking.guest_last_name = request.guest.last_name
            booking.guest_email = request.guest.email
            booking.guest_phone = request.guest.phone
        booking.pickup_location = request.pickup_location or item.primary_location
        booking.special_requests = request.special_requests
        booking.service_tier = tier
        booking.base_price = quote.base_price
        booking.rental_days = quote.days
        booking.subtotal = quote.subtotal
        booking.service_fee = charges.service_fee
        booking.insurance = quote.insurance
        booking.taxes = charges.taxes
        booking.security_deposit = quote.security_deposit
        booking.total = charges.total
        booking.currency = quote.currency
        booking.payment_status = PaymentStatus.PENDING
        booking.paid_amount = 0
        booking.refunded_amount = 0
        booking.reminders_sent = []
        booking.is_temporary = False
        booking.expires_at = None
        booking.created_at = now
        booking.updated_at = now

        self.db.add(booking)
        await self.db.commit()

        metrics_collector.record_booking_created(item.item_type.value)
        logger.info(
            "Booking created successfully",
            extra={
                "booking_id": str(booking.id),
                "booking_code": booking.code,
                "item_id": item.item_id,
                "start_at": isoformat_z(start),
                "end_at": isoformat_z(end),
                "total": booking.total,
                "customer_id": str(customer.id) if customer else None,
                "from_hold": hold is not None,
            }
        )

        return booking

    async def get_booking(self, booking_id: Union[str, UUID]) -> Booking:
        """
        Get a booking by ID. Temporary holds are not bookings.

        Raises:
            NotFoundError: If booking not found
        """
        booking_uuid = _parse_uuid(booking_id, "booking")
        stmt = select(Booking).where(Booking.id == booking_uuid, Booking.is_temporary.is_(False))
        booking = (await self.db.execute(stmt)).scalar_one_or_none()
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    def quote_cancellation(self, booking: Booking) -> RefundQuote:
        """Refund the customer would receive if the booking were cancelled now."""
        hours = hours_between(booking.start_at, self.clock())
        return calculate_refund(booking.item_type, booking.total, booking.security_deposit, hours)

    async def cancel_booking(
        self,
        booking_id: Union[str, UUID],
        actor: str,
        reason: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> Booking:
        """
        Cancel a booking on behalf of a customer, subject to the notice policy.

        Args:
            booking_id: Booking to cancel
            actor: Who requested the cancellation
            reason: Optional cancellation reason
            owner_id: When set, the booking must belong to this customer

        Raises:
            NotFoundError: If booking not found
            AuthorizationError: If the booking belongs to someone else
            PolicyViolationError: If the booking can no longer be cancelled
            InvalidTransitionError, ConflictError: From the status update
        """
        booking = await self.get_booking(booking_id)

        if owner_id is not None and str(booking.customer_id) != owner_id:
            raise AuthorizationError(detail="Bookings can only be cancelled by their owner")

        now = self.clock()
        hours_until_start = hours_between(booking.start_at, now)
        if not can_be_cancelled(booking.item_type, booking.status, hours_until_start):
            logger.warning(
                "Cancellation rejected",
                extra={
                    "booking_id": str(booking.id),
                    "status": booking.status.value,
                    "hours_until_start": round(hours_until_start, 2),
                }
            )
            raise PolicyViolationError(
                detail=(
                    f"Booking {booking.code} cannot be cancelled in status '{booking.status.value}' "
                    f"{round(hours_until_start, 1)} hours before pickup"
                ),
                code="CANCELLATION_NOT_ALLOWED",
                extensions={
                    "status": booking.status.value,
                    "hours_until_start": round(hours_until_start, 2),
                    "required_notice_hours": CANCELLATION_NOTICE_HOURS[booking.item_type],
                },
            )

        refund = self.quote_cancellation(booking)
        reason = reason or "Cancelled by customer"
        try:
            return await self.status_service.update_status(
                booking.id,
                BookingStatus.CANCELLED,
                actor,
                reason=reason,
                metadata={
                    "cancelled_at": now,
                    "cancellation_reason": reason,
                    "refund_amount": refund.amount,
                },
            )
        except ConflictError:
            logger.warning(
                "Cancellation lost a race with another update",
                extra={"booking_id": str(booking.id), "actor": actor}
            )
            raise
