"""Booking status workflow: validated transitions, audit trail and history."""

from datetime import datetime
from typing import Any, Callable, Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ProblemDetailsException,
    ValidationError,
)
from ..core.observability import get_logger, metrics_collector
from ..core.timeutils import Clock, parse_timestamp, utcnow
from ..models.booking import Booking, BookingModification, BookingStatus, PaymentStatus
from ..schemas.booking import StatusHistory, StatusHistoryEntry
from .availability_service import AvailabilityService
from .booking_policy import AUTOMATIC_TRIGGERS, allowed_transitions
from .status_actions import ActionDispatcher

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"


def _non_negative_int(value: Any) -> int:
    number = int(value)
    if number < 0:
        raise ValueError("must not be negative")
    return number


# Booking fields a status change may set alongside the status
METADATA_FIELDS: dict[str, Callable[[Any], Any]] = {
    "cancelled_at": lambda value: parse_timestamp("cancelled_at", value),
    "cancellation_reason": str,
    "refund_amount": _non_negative_int,
    "no_show_charge": _non_negative_int,
    "payment_status": PaymentStatus,
    "payment_intent_id": str,
    "paid_amount": _non_negative_int,
    "pickup_location": str,
    "special_requests": str,
}


def coerce_metadata(metadata: Optional[dict[str, Any]]) -> dict[str, Any]:
    """
    Validate status-change metadata against the whitelisted booking fields.

    Raises:
        ValidationError: For unknown fields or values of the wrong shape
    """
    if not metadata:
        return {}

    unknown = sorted(set(metadata) - set(METADATA_FIELDS))
    if unknown:
        raise ValidationError(
            detail=f"Unsupported metadata fields: {', '.join(unknown)}",
            errors={field: "not an updatable booking field" for field in unknown},
        )

    updates = {}
    errors = {}
    for field, value in metadata.items():
        if value is None:
            continue
        try:
            updates[field] = METADATA_FIELDS[field](value)
        except (TypeError, ValueError) as e:
            errors[field] = str(e)
    if errors:
        raise ValidationError(detail="Invalid metadata values", errors=errors)
    return updates


def next_automatic_status(
    status: BookingStatus,
    item_type,
    start_at: datetime,
    end_at: datetime,
    now: datetime,
) -> Optional[BookingStatus]:
    """
    The status the scheduler should move a booking to, if any.

    A ready booking whose pickup grace period has lapsed becomes a no-show
    even when the pickup time itself has also passed.
    """
    triggers = AUTOMATIC_TRIGGERS[item_type]

    if status == BookingStatus.CONFIRMED and now >= start_at - triggers.preparing_lead:
        return BookingStatus.PREPARING
    if status == BookingStatus.PREPARING and now >= start_at - triggers.ready_lead:
        return BookingStatus.READY_FOR_PICKUP
    if status == BookingStatus.READY_FOR_PICKUP:
        if now > start_at + triggers.no_show_grace:
            return BookingStatus.NO_SHOW
        if now >= start_at:
            return BookingStatus.IN_PROGRESS
    if status == BookingStatus.IN_PROGRESS and now >= end_at + triggers.completion_delay:
        return BookingStatus.COMPLETED
    return None


def _as_uuid(booking_id: Union[str, UUID]) -> UUID:
    if isinstance(booking_id, UUID):
        return booking_id
    try:
        return UUID(str(booking_id))
    except ValueError:
        raise NotFoundError(resource_type="booking", resource_id=str(booking_id))


class BookingStatusService:
    """Service applying status transitions to bookings."""

    def __init__(
        self,
        db: AsyncSession,
        dispatcher: Optional[ActionDispatcher] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.clock = clock

    async def _load(self, booking_id: UUID, for_update: bool = False) -> Booking:
        stmt = select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        booking = (await self.db.execute(stmt)).scalar_one_or_none()
        if booking is None:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        if booking.is_temporary:
            raise ConflictError(
                detail=f"Booking {booking_id} is a temporary hold and has no status workflow"
            )
        return booking

    async def update_status(
        self,
        booking_id: Union[str, UUID],
        new_status: Union[str, BookingStatus],
        actor: str,
        reason: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Booking:
        """
        Move a booking to a new status.

        The row is locked for the duration of the transaction and the version
        column guards against a concurrent writer on backends without row locks.
        Actions for the new status are dispatched after the commit.

        Args:
            booking_id: Booking to update
            new_status: Requested status
            actor: Who requested the change ("system" for automatic transitions)
            reason: Optional free-text reason recorded in the history
            metadata: Booking fields to set with the status

        Returns:
            The updated booking

        Raises:
            NotFoundError: If the booking does not exist
            InvalidTransitionError: If the transition is not allowed
            ConflictError: On a concurrent update or a double booking
            ValidationError: For malformed status or metadata
        """
        booking_uuid = _as_uuid(booking_id)
        try:
            new_status = BookingStatus(new_status)
        except ValueError:
            raise ValidationError(
                detail=f"Unknown booking status '{new_status}'",
                errors={"status": str(new_status)},
            )
        updates = coerce_metadata(metadata)
        now = self.clock()

        try:
            booking = await self._load(booking_uuid, for_update=True)
            current_status = booking.status

            allowed = allowed_transitions(current_status)
            if new_status not in allowed:
                logger.warning(
                    "Rejected status transition",
                    booking_id=str(booking_uuid),
                    current_status=current_status.value,
                    requested_status=new_status.value,
                    actor=actor,
                )
                raise InvalidTransitionError(
                    booking_id=str(booking_uuid),
                    current_status=current_status.value,
                    requested_status=new_status.value,
                    allowed_transitions=[status.value for status in allowed],
                )

            if new_status == BookingStatus.CONFIRMED:
                await self._ensure_no_double_booking(booking, now)

            # The version counter is bumped on flush; stamp the audit rows with the result
            produced_version = booking.version + 1
            booking.status = new_status
            booking.updated_at = now
            self.db.add(BookingModification(
                booking_id=booking.id,
                actor=actor,
                field="status",
                old_value=current_status.value,
                new_value=new_status.value,
                reason=reason,
                created_at=now,
                booking_version=produced_version,
            ))

            for field, value in updates.items():
                old_value = getattr(booking, field)
                setattr(booking, field, value)
                self.db.add(BookingModification(
                    booking_id=booking.id,
                    actor=actor,
                    field=field,
                    old_value=None if old_value is None else str(getattr(old_value, "value", old_value)),
                    new_value=str(getattr(value, "value", value)),
                    reason=reason,
                    created_at=now,
                    booking_version=produced_version,
                ))

            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning("Concurrent status update detected", booking_id=str(booking_uuid), actor=actor)
            raise ConflictError(
                detail=f"Booking {booking_uuid} was modified concurrently; reload and retry"
            ) from e
        except ProblemDetailsException:
            await self.db.rollback()
            raise

        trigger = "system" if actor == SYSTEM_ACTOR else "manual"
        metrics_collector.record_status_transition(current_status.value, new_status.value, trigger)
        logger.info(
            "Booking status updated",
            booking_id=str(booking.id),
            booking_code=booking.code,
            from_status=current_status.value,
            to_status=new_status.value,
            actor=actor,
            reason=reason,
        )

        if self.dispatcher is not None:
            self.dispatcher.schedule(booking.id, new_status, actor)

        return booking

    async def _ensure_no_double_booking(self, booking: Booking, now: datetime) -> None:
        conflicts = await AvailabilityService(self.db, self.clock).find_conflicts(
            booking.item_id,
            booking.item_type,
            booking.start_at,
            booking.end_at,
            now=now,
            exclude_ids=[booking.id],
        )
        if conflicts:
            raise ConflictError(
                detail=f"Item {booking.item_id} is already booked for the requested dates",
                conflicting_resource={
                    "item_id": booking.item_id,
                    "booking_ids": [str(conflict.id) for conflict in conflicts],
                },
            )

    async def get_status_history(self, booking_id: Union[str, UUID]) -> StatusHistory:
        """Chronological status history, starting with the creation entry."""
        booking = await self._load(_as_uuid(booking_id))

        stmt = (
            select(BookingModification)
            .where(BookingModification.booking_id == booking.id, BookingModification.field == "status")
            .order_by(BookingModification.booking_version, BookingModification.created_at)
        )
        modifications = (await self.db.execute(stmt)).scalars()

        entries = [
            StatusHistoryEntry(
                status=BookingStatus.PENDING_PAYMENT,
                timestamp=booking.created_at,
                actor=SYSTEM_ACTOR,
                reason="Booking created",
            )
        ]
        entries.extend(
            StatusHistoryEntry(
                status=BookingStatus(modification.new_value),
                timestamp=modification.created_at,
                actor=modification.actor,
                reason=modification.reason,
            )
            for modification in modifications
        )

        return StatusHistory(
            booking_id=str(booking.id),
            current_status=booking.status,
            history=entries,
        )
