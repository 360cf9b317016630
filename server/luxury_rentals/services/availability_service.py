"""Availability engine: bookability checks, calendar projection and temporary holds."""

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Iterable, Optional, Union
from uuid import UUID

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import acquire_transaction_lock
from ..core.exceptions import (
    ConflictError,
    InternalServerError,
    NotFoundError,
    PolicyViolationError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..core.timeutils import Clock, isoformat_z, parse_timestamp, to_naive_utc, utcnow
from ..models.booking import Booking, BookingStatus
from ..models.customer import CustomerTier
from ..models.inventory import InventoryItem, ItemStatus, ItemType
from ..schemas.availability import (
    AvailabilityCalendar,
    AvailabilityCode,
    AvailabilityResult,
    AvailabilitySummary,
    CalendarBlackout,
    CalendarBooking,
    ConflictSummary,
    ItemSummary,
    MultiAvailabilityResult,
    Pricing,
    TemporaryReservation,
)
from .booking_policy import (
    BUFFER_TIMES,
    CONFLICTING_STATUSES,
    PriceQuote,
    blackout_overlaps,
    calculate_price,
    intervals_overlap,
    rental_days,
    validate_booking_window,
)

logger = logging.getLogger(__name__)

TEMPORARY_HOLD_PREFIX = "HOLD"


def inventory_lock_key(item_id: str) -> str:
    """Advisory lock key serializing check-then-insert for one item."""
    return f"inventory:{item_id}"


def normalize_item_id(item_id: str) -> str:
    return item_id.strip().upper()


def generate_booking_code(prefix: str, length: int = 8) -> str:
    """Generate a random confirmation code such as MIDAS-7Q2K9XAB."""
    alphabet = string.ascii_uppercase + string.digits
    return f"{prefix}-" + "".join(secrets.choice(alphabet) for _ in range(length))


async def allocate_booking_code(db: AsyncSession, prefix: str) -> str:
    """Generate a code that is not yet used by any booking or hold."""
    code = generate_booking_code(prefix)
    while (await db.execute(select(Booking.id).where(Booking.code == code))).first() is not None:
        code = generate_booking_code(prefix)
    return code


def pricing_schema(quote: PriceQuote) -> Pricing:
    return Pricing(**quote.as_dict())


def item_summary(item: InventoryItem) -> ItemSummary:
    return ItemSummary(
        item_id=item.item_id,
        name=item.name,
        item_type=item.item_type,
        category=item.category,
        brand=item.brand,
        model=item.model,
        primary_location=item.primary_location,
        specifications=item.specifications or {},
    )


def raise_for_unavailable(result: AvailabilityResult) -> None:
    """Translate a negative availability result into the matching API error."""
    if result.available:
        return

    if result.code == AvailabilityCode.ITEM_NOT_FOUND:
        raise NotFoundError(resource_type="inventory item", resource_id=result.item_id)

    if result.code == AvailabilityCode.BOOKING_CONFLICT:
        error = ConflictError(
            detail=result.reason or "Item is already booked for the requested dates",
            conflicting_resource={
                "item_id": result.item_id,
                "conflicts": [c.model_dump(mode="json") for c in result.conflicts or []],
            },
        )
        error.problem_details.update({"code": result.code.value, "retryable": False})
        raise error

    if result.code == AvailabilityCode.SYSTEM_ERROR:
        raise InternalServerError(detail=result.reason or "Availability could not be determined")

    details = {
        key: value
        for key, value in {
            "item_id": result.item_id,
            "errors": result.errors,
            "blackout_reason": result.blackout_reason,
            "minimum_days": result.minimum_days,
        }.items()
        if value is not None
    }
    raise PolicyViolationError(
        detail=result.reason or "The item cannot be booked for the requested dates",
        code=result.code.value if result.code else "UNAVAILABLE",
        extensions=details,
    )


def _as_uuid(value: Union[str, UUID, None]) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class AvailabilityService:
    """Service deciding whether items can be booked, and holding them during checkout."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def get_item(self, item_id: str) -> Optional[InventoryItem]:
        """Get an inventory item by its business id."""
        stmt = select(InventoryItem).where(InventoryItem.item_id == normalize_item_id(item_id))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    def quote(
        self,
        item: InventoryItem,
        start: datetime,
        end: datetime,
        tier: CustomerTier = CustomerTier.STANDARD,
    ) -> PriceQuote:
        """Price the item for a date range."""
        return calculate_price(
            base_price=item.base_price,
            security_deposit=item.security_deposit,
            insurance_rate=item.insurance_rate,
            start=start,
            end=end,
            tier=tier,
            pricing_tiers=item.pricing_tiers,
            seasonal_multipliers=item.seasonal_multipliers,
            currency=item.currency,
        )

    async def find_conflicts(
        self,
        item_id: str,
        item_type: ItemType,
        start: datetime,
        end: datetime,
        now: Optional[datetime] = None,
        exclude_ids: Iterable[UUID] = (),
    ) -> list[Booking]:
        """
        Bookings and live temporary holds whose buffered window overlaps [start, end).

        Expired holds are ignored even if the cleanup sweep has not removed them yet.
        """
        now = now or self.clock()
        buffer = BUFFER_TIMES[ItemType(item_type)]

        stmt = (
            select(Booking)
            .where(
                Booking.item_id == item_id,
                or_(
                    and_(Booking.is_temporary.is_(False), Booking.status.in_(CONFLICTING_STATUSES)),
                    and_(Booking.is_temporary.is_(True), Booking.expires_at > now),
                ),
                Booking.start_at < end + buffer,
                Booking.end_at > start - buffer,
            )
            .order_by(Booking.start_at)
        )

        excluded = [booking_id for booking_id in exclude_ids if booking_id is not None]
        if excluded:
            stmt = stmt.where(Booking.id.notin_(excluded))

        result = await self.db.execute(stmt)
        return list(result.scalars())

    def _unavailable(
        self,
        item_id: str,
        item_type: Optional[ItemType],
        code: AvailabilityCode,
        reason: str,
        **details,
    ) -> AvailabilityResult:
        metrics_collector.record_availability_check(
            item_type.value if item_type else "unknown", code.value
        )
        return AvailabilityResult(item_id=item_id, available=False, code=code, reason=reason, **details)

    async def check_availability(
        self,
        item_id: str,
        start_date: Union[str, datetime],
        end_date: Union[str, datetime],
        exclude_booking_id: Union[str, UUID, None] = None,
    ) -> AvailabilityResult:
        """
        Decide whether an item can be booked for a date range.

        Business-rule failures are reported in the result, never raised. Checks
        run in order and stop at the first failure: dates, item state,
        blackout periods, minimum rental length, then existing bookings.

        Args:
            item_id: Item to check
            start_date: Rental start (ISO 8601 string or datetime)
            end_date: Rental end (ISO 8601 string or datetime)
            exclude_booking_id: Booking ignored when looking for conflicts

        Returns:
            AvailabilityResult with either the item and price or a reason code
        """
        try:
            return await self._evaluate(item_id, start_date, end_date, exclude_booking_id)
        except Exception as e:
            logger.error(
                "Availability check failed",
                extra={"item_id": item_id, "error": str(e)},
                exc_info=True,
            )
            return self._unavailable(
                item_id,
                None,
                AvailabilityCode.SYSTEM_ERROR,
                "Availability could not be determined",
            )

    async def _evaluate(
        self,
        item_id: str,
        start_date: Union[str, datetime],
        end_date: Union[str, datetime],
        exclude_booking_id: Union[str, UUID, None],
    ) -> AvailabilityResult:
        now = self.clock()
        item_id = normalize_item_id(item_id)

        try:
            start = parse_timestamp("start_date", start_date)
            end = parse_timestamp("end_date", end_date)
        except ValueError as e:
            return self._unavailable(
                item_id, None, AvailabilityCode.INVALID_DATES, str(e), errors=[str(e)]
            )

        if end <= start:
            message = "End date must be after start date"
            return self._unavailable(
                item_id, None, AvailabilityCode.INVALID_DATES, message, errors=[message]
            )

        item = await self.get_item(item_id)
        if item is None:
            return self._unavailable(
                item_id, None, AvailabilityCode.ITEM_NOT_FOUND, f"Item {item_id} not found"
            )

        errors = validate_booking_window(item.item_type, start, end, now)
        if errors:
            return self._unavailable(
                item_id, item.item_type, AvailabilityCode.INVALID_DATES, "; ".join(errors), errors=errors
            )

        if not item.is_active:
            return self._unavailable(
                item_id, item.item_type, AvailabilityCode.ITEM_INACTIVE, "Item is not currently active"
            )

        if item.status != ItemStatus.AVAILABLE:
            return self._unavailable(
                item_id,
                item.item_type,
                AvailabilityCode.ITEM_STATUS_UNAVAILABLE,
                f"Item is currently {item.status.value}",
            )

        for blackout in sorted(item.blackout_periods, key=lambda b: b.start_at):
            if blackout_overlaps(start, end, blackout.start_at, blackout.end_at):
                return self._unavailable(
                    item_id,
                    item.item_type,
                    AvailabilityCode.BLACKOUT_PERIOD,
                    (
                        f"Item is unavailable from {isoformat_z(blackout.start_at)} "
                        f"to {isoformat_z(blackout.end_at)}: {blackout.reason}"
                    ),
                    blackout_reason=blackout.reason,
                )

        days = rental_days(start, end)
        if days < item.minimum_rental_days:
            return self._unavailable(
                item_id,
                item.item_type,
                AvailabilityCode.MINIMUM_RENTAL_NOT_MET,
                f"Minimum rental period is {item.minimum_rental_days} days",
                minimum_days=item.minimum_rental_days,
            )

        conflicts = await self.find_conflicts(
            item.item_id,
            item.item_type,
            start,
            end,
            now=now,
            exclude_ids=[_as_uuid(exclude_booking_id)],
        )
        if conflicts:
            return self._unavailable(
                item_id,
                item.item_type,
                AvailabilityCode.BOOKING_CONFLICT,
                "Item is already booked for the requested dates",
                conflicts=[
                    ConflictSummary(
                        booking_id=str(booking.id),
                        code=booking.code,
                        start_at=booking.start_at,
                        end_at=booking.end_at,
                        status=booking.status,
                        temporary=booking.is_temporary,
                    )
                    for booking in conflicts
                ],
            )

        metrics_collector.record_availability_check(item.item_type.value, "AVAILABLE")
        return AvailabilityResult(
            item_id=item_id,
            available=True,
            item=item_summary(item),
            pricing=pricing_schema(self.quote(item, start, end)),
            buffer_hours=BUFFER_TIMES[item.item_type].total_seconds() / 3600,
        )

    async def check_multiple_availability(
        self,
        item_ids: list[str],
        start_date: Union[str, datetime],
        end_date: Union[str, datetime],
    ) -> MultiAvailabilityResult:
        """Check several items for the same dates and partition the results."""
        available = []
        unavailable = []
        for item_id in item_ids:
            result = await self.check_availability(item_id, start_date, end_date)
            (available if result.available else unavailable).append(result)

        return MultiAvailabilityResult(
            available=available,
            unavailable=unavailable,
            summary=AvailabilitySummary(
                total=len(item_ids),
                available=len(available),
                unavailable=len(unavailable),
            ),
        )

    async def get_availability_calendar(
        self,
        item_id: str,
        start_date: datetime,
        end_date: datetime,
    ) -> AvailabilityCalendar:
        """
        Bookings, live holds and blackout periods touching a date range.

        Raises:
            ValidationError: If the range is empty
            NotFoundError: If the item does not exist
        """
        start = to_naive_utc(start_date)
        end = to_naive_utc(end_date)
        if end <= start:
            raise ValidationError(
                detail="end_date must be after start_date",
                errors={"end_date": "must be after start_date"},
            )

        item = await self.get_item(item_id)
        if item is None:
            raise NotFoundError(resource_type="inventory item", resource_id=normalize_item_id(item_id))

        now = self.clock()
        stmt = (
            select(Booking)
            .where(
                Booking.item_id == item.item_id,
                or_(
                    and_(Booking.is_temporary.is_(False), Booking.status.in_(CONFLICTING_STATUSES)),
                    and_(Booking.is_temporary.is_(True), Booking.expires_at > now),
                ),
                Booking.start_at < end,
                Booking.end_at > start,
            )
            .order_by(Booking.start_at)
        )
        bookings = list((await self.db.execute(stmt)).scalars())

        return AvailabilityCalendar(
            item_id=item.item_id,
            item_name=item.name,
            start_date=start,
            end_date=end,
            bookings=[
                CalendarBooking(
                    booking_id=str(booking.id),
                    code=booking.code,
                    start_at=booking.start_at,
                    end_at=booking.end_at,
                    status=booking.status,
                    entry_type="temporary-hold" if booking.is_temporary else "booking",
                )
                for booking in bookings
            ],
            blackout_dates=[
                CalendarBlackout(start_at=b.start_at, end_at=b.end_at, reason=b.reason)
                for b in item.blackout_periods
                if blackout_overlaps(start, end, b.start_at, b.end_at)
            ],
            buffer_hours=BUFFER_TIMES[item.item_type].total_seconds() / 3600,
        )

    async def create_temporary_reservation(
        self,
        item_id: str,
        start_date: Union[str, datetime],
        end_date: Union[str, datetime],
        requester_id: str,
        duration_minutes: Optional[int] = None,
    ) -> TemporaryReservation:
        """
        Hold an item for a short checkout window.

        The hold is a booking row flagged temporary. It blocks conflicting
        requests until `expires_at` and is removed by the cleanup sweep.

        Raises:
            ValidationError: If the duration is out of bounds
            NotFoundError, ConflictError, PolicyViolationError: If the item is unavailable
        """
        duration = duration_minutes if duration_minutes is not None else settings.temporary_hold_default_minutes
        if not settings.temporary_hold_min_minutes <= duration <= settings.temporary_hold_max_minutes:
            raise ValidationError(
                detail=(
                    f"duration_minutes must be between {settings.temporary_hold_min_minutes} "
                    f"and {settings.temporary_hold_max_minutes}"
                ),
                errors={"duration_minutes": duration},
            )

        item_id = normalize_item_id(item_id)
        await acquire_transaction_lock(self.db, inventory_lock_key(item_id))

        result = await self.check_availability(item_id, start_date, end_date)
        raise_for_unavailable(result)

        item = await self.get_item(item_id)
        start = parse_timestamp("start_date", start_date)
        end = parse_timestamp("end_date", end_date)
        quote = self.quote(item, start, end)
        now = self.clock()

        hold = Booking(
            code=await allocate_booking_code(self.db, TEMPORARY_HOLD_PREFIX),
            item_id=item.item_id,
            item_name=item.name,
            item_type=item.item_type,
            item_snapshot=item_summary(item).model_dump(mode="json"),
            start_at=start,
            end_at=end,
            status=BookingStatus.PENDING_PAYMENT,
            base_price=quote.base_price,
            rental_days=quote.days,
            subtotal=quote.subtotal,
            insurance=quote.insurance,
            security_deposit=quote.security_deposit,
            total=quote.subtotal + quote.insurance,
            currency=quote.currency,
            is_temporary=True,
            expires_at=now + timedelta(minutes=duration),
            requester_ref=requester_id,
            created_at=now,
            updated_at=now,
        )
        self.db.add(hold)
        await self.db.commit()

        metrics_collector.record_temporary_hold_created(item.item_type.value)
        logger.info(
            "Temporary reservation created",
            extra={
                "reservation_id": str(hold.id),
                "item_id": item.item_id,
                "requester_id": requester_id,
                "expires_at": isoformat_z(hold.expires_at),
            }
        )

        return TemporaryReservation(
            reservation_id=str(hold.id),
            item_id=item.item_id,
            start_at=start,
            end_at=end,
            expires_at=hold.expires_at,
            requester_id=requester_id,
            pricing=pricing_schema(quote),
        )

    async def cleanup_expired_reservations(self, now: Optional[datetime] = None) -> int:
        """
        Delete temporary holds whose expiry has passed.

        Returns:
            Number of holds removed
        """
        now = now or self.clock()
        stmt = (
            delete(Booking)
            .where(Booking.is_temporary.is_(True), Booking.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        removed = result.rowcount or 0
        metrics_collector.record_temporary_holds_expired(removed)
        if removed:
            logger.info(
                "Expired temporary reservations removed",
                extra={"expired_count": removed, "timestamp": isoformat_z(now)}
            )
        return removed


__all__ = [
    "AvailabilityService",
    "allocate_booking_code",
    "generate_booking_code",
    "intervals_overlap",
    "inventory_lock_key",
    "normalize_item_id",
    "raise_for_unavailable",
]
