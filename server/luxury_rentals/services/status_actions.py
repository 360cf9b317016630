"""
Side effects run after a booking changes status.

Each status maps to an ordered list of actions. The dispatcher runs them in
the background, each in its own session and transaction, so a failing action
is logged and counted without undoing the status change or blocking the
actions after it.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.observability import get_logger, metrics_collector
from ..core.timeutils import Clock, hours_between, isoformat_z, utcnow
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.customer import Customer, StaffMember, StaffRole
from ..models.inventory import InventoryItem, ItemStatus
from .booking_policy import calculate_refund, loyalty_points_for, no_show_penalty, tier_for_spend
from .integrations import CalendarClient, NotificationClient, PaymentClient

logger = get_logger(__name__)


class BookingAction(str, Enum):
    """Side effects attached to status changes."""
    NOTIFY_CUSTOMER = "notify-customer"
    UPDATE_INVENTORY_METRICS = "update-inventory-metrics"
    ASSIGN_CONCIERGE = "assign-concierge"
    NOTIFY_STAFF = "notify-staff"
    BEGIN_TRACKING = "begin-tracking"
    REQUEST_REVIEW = "request-review"
    UPDATE_CUSTOMER_METRICS = "update-customer-metrics"
    PROCESS_REFUND = "process-refund"
    RELEASE_INVENTORY = "release-inventory"
    APPLY_NO_SHOW_POLICY = "apply-no-show-policy"


STATUS_ACTIONS: dict[BookingStatus, tuple[BookingAction, ...]] = {
    BookingStatus.CONFIRMED: (
        BookingAction.NOTIFY_CUSTOMER,
        BookingAction.UPDATE_INVENTORY_METRICS,
        BookingAction.ASSIGN_CONCIERGE,
    ),
    BookingStatus.PREPARING: (
        BookingAction.NOTIFY_STAFF,
        BookingAction.NOTIFY_CUSTOMER,
    ),
    BookingStatus.READY_FOR_PICKUP: (
        BookingAction.NOTIFY_CUSTOMER,
    ),
    BookingStatus.IN_PROGRESS: (
        BookingAction.BEGIN_TRACKING,
        BookingAction.NOTIFY_CUSTOMER,
    ),
    BookingStatus.COMPLETED: (
        BookingAction.NOTIFY_CUSTOMER,
        BookingAction.REQUEST_REVIEW,
        BookingAction.UPDATE_CUSTOMER_METRICS,
    ),
    BookingStatus.CANCELLED: (
        BookingAction.PROCESS_REFUND,
        BookingAction.RELEASE_INVENTORY,
        BookingAction.NOTIFY_CUSTOMER,
    ),
    BookingStatus.NO_SHOW: (
        BookingAction.NOTIFY_CUSTOMER,
        BookingAction.APPLY_NO_SHOW_POLICY,
    ),
}

NOTIFICATION_TYPES: dict[BookingStatus, str] = {
    BookingStatus.CONFIRMED: "booking_confirmed",
    BookingStatus.PREPARING: "booking_preparing",
    BookingStatus.READY_FOR_PICKUP: "booking_ready_for_pickup",
    BookingStatus.IN_PROGRESS: "booking_started",
    BookingStatus.COMPLETED: "booking_completed",
    BookingStatus.CANCELLED: "booking_cancelled",
    BookingStatus.NO_SHOW: "booking_no_show",
}


class ActionError(Exception):
    """Raised by an action that could not complete."""


@dataclass(frozen=True)
class Contact:
    """Where to reach the person who owns a booking."""

    email: str
    name: str
    reminders_enabled: bool = True


async def resolve_contact(session: AsyncSession, booking: Booking) -> Optional[Contact]:
    """Registered customer's details, falling back to the guest contact."""
    if booking.customer_id is not None:
        customer = await session.get(Customer, booking.customer_id)
        if customer is not None:
            return Contact(
                email=customer.email,
                name=customer.full_name,
                reminders_enabled=customer.booking_reminders_enabled,
            )
    if booking.guest_email:
        name = " ".join(part for part in (booking.guest_first_name, booking.guest_last_name) if part)
        return Contact(email=booking.guest_email, name=name or booking.guest_email)
    return None


def template_data(booking: Booking, contact: Optional[Contact] = None, **extra: Any) -> dict[str, Any]:
    data = {
        "booking_code": booking.code,
        "item_name": booking.item_name,
        "start_at": isoformat_z(booking.start_at),
        "end_at": isoformat_z(booking.end_at),
        "pickup_location": booking.pickup_location,
        "status": booking.status.value,
    }
    if contact is not None:
        data["customer_name"] = contact.name
    data.update(extra)
    return data


@dataclass
class ActionContext:
    """Everything an action needs; `booking` is bound to `session`."""

    session: AsyncSession
    booking: Booking
    status: BookingStatus
    actor: str
    now: datetime
    notifier: NotificationClient
    payments: PaymentClient


class Action(ABC):
    """A side effect of entering a status."""

    action: BookingAction

    @abstractmethod
    async def execute(self, ctx: ActionContext) -> None:
        """Apply the side effect. Raise to mark it failed."""


class NotifyCustomer(Action):
    action = BookingAction.NOTIFY_CUSTOMER

    async def execute(self, ctx: ActionContext) -> None:
        contact = await resolve_contact(ctx.session, ctx.booking)
        if contact is None:
            logger.warning("No contact for booking notification", booking_id=str(ctx.booking.id))
            return

        extra = {}
        if ctx.status == BookingStatus.CANCELLED and ctx.booking.refund_amount is not None:
            extra["refund_amount"] = ctx.booking.refund_amount

        delivered = await ctx.notifier.send(
            NOTIFICATION_TYPES[ctx.status],
            contact.email,
            template_data(ctx.booking, contact, **extra),
        )
        if not delivered:
            logger.warning(
                "Customer notification not delivered",
                booking_id=str(ctx.booking.id),
                status=ctx.status.value,
            )


class UpdateInventoryMetrics(Action):
    action = BookingAction.UPDATE_INVENTORY_METRICS

    async def execute(self, ctx: ActionContext) -> None:
        item = await ctx.session.get(InventoryItem, ctx.booking.item_id)
        if item is None:
            raise ActionError(f"Inventory item {ctx.booking.item_id} no longer exists")
        item.total_bookings += 1
        item.total_revenue += ctx.booking.total
        item.last_booked_at = ctx.now


class AssignConcierge(Action):
    """Pick the first active concierge covering the pickup location."""

    action = BookingAction.ASSIGN_CONCIERGE

    async def execute(self, ctx: ActionContext) -> None:
        booking = ctx.booking
        if booking.concierge_id is not None:
            return

        location = booking.pickup_location or (booking.item_snapshot or {}).get("primary_location")
        stmt = (
            select(StaffMember)
            .where(StaffMember.role == StaffRole.CONCIERGE, StaffMember.is_active.is_(True))
            .order_by(StaffMember.created_at)
        )
        concierges = list((await ctx.session.execute(stmt)).scalars())
        concierge = next(
            (c for c in concierges if location and location in (c.preferred_locations or [])),
            None,
        )
        if concierge is None:
            logger.warning("No concierge available", booking_id=str(booking.id), location=location)
            return

        booking.concierge_id = concierge.id
        await ctx.notifier.send(
            "concierge_new_assignment",
            concierge.email,
            template_data(booking, concierge_name=concierge.full_name),
        )
        logger.info("Concierge assigned", booking_id=str(booking.id), concierge_id=str(concierge.id))


class NotifyStaff(Action):
    action = BookingAction.NOTIFY_STAFF

    async def execute(self, ctx: ActionContext) -> None:
        if ctx.booking.concierge_id is None:
            logger.info("No concierge to notify", booking_id=str(ctx.booking.id))
            return
        concierge = await ctx.session.get(StaffMember, ctx.booking.concierge_id)
        if concierge is None or not concierge.is_active:
            return
        await ctx.notifier.send(
            "concierge_preparation_required",
            concierge.email,
            template_data(ctx.booking, special_requests=ctx.booking.special_requests),
        )


class BeginTracking(Action):
    action = BookingAction.BEGIN_TRACKING

    async def execute(self, ctx: ActionContext) -> None:
        ctx.booking.tracking_started_at = ctx.now


class RequestReview(Action):
    action = BookingAction.REQUEST_REVIEW

    async def execute(self, ctx: ActionContext) -> None:
        contact = await resolve_contact(ctx.session, ctx.booking)
        if contact is not None:
            await ctx.notifier.send("review_request", contact.email, template_data(ctx.booking, contact))


class UpdateCustomerMetrics(Action):
    """Lifetime spend, loyalty points and tier for registered customers."""

    action = BookingAction.UPDATE_CUSTOMER_METRICS

    async def execute(self, ctx: ActionContext) -> None:
        if ctx.booking.customer_id is None:
            return
        customer = await ctx.session.get(Customer, ctx.booking.customer_id)
        if customer is None:
            raise ActionError(f"Customer {ctx.booking.customer_id} no longer exists")

        amount = ctx.booking.total
        # Points accrue at the tier held before this booking counts
        customer.loyalty_points += loyalty_points_for(amount, customer.tier)
        customer.total_bookings += 1
        customer.total_spent += amount
        customer.lifetime_value = customer.total_spent
        customer.average_booking_value = customer.total_spent // customer.total_bookings
        customer.last_booking_at = ctx.now
        customer.tier = max(
            customer.tier,
            tier_for_spend(customer.total_spent),
            key=list(type(customer.tier)).index,
        )


class ProcessRefund(Action):
    """Refund captured payments through the payment provider."""

    action = BookingAction.PROCESS_REFUND

    async def execute(self, ctx: ActionContext) -> None:
        booking = ctx.booking
        if booking.payment_status != PaymentStatus.COMPLETED or booking.paid_amount <= 0:
            return

        amount = booking.refund_amount
        if amount is None:
            hours = hours_between(booking.start_at, ctx.now)
            amount = calculate_refund(booking.item_type, booking.total, booking.security_deposit, hours).amount
        amount = min(amount, booking.paid_amount - booking.refunded_amount)
        if amount <= 0:
            return

        if not await ctx.payments.refund(booking, amount):
            raise ActionError(f"Payment provider did not accept the refund for booking {booking.id}")

        booking.refund_amount = amount
        booking.refunded_amount += amount
        booking.payment_status = (
            PaymentStatus.REFUNDED
            if booking.refunded_amount >= booking.paid_amount
            else PaymentStatus.PARTIALLY_REFUNDED
        )
        logger.info("Refund processed", booking_id=str(booking.id), amount=amount)


class ReleaseInventory(Action):
    action = BookingAction.RELEASE_INVENTORY

    async def execute(self, ctx: ActionContext) -> None:
        item = await ctx.session.get(InventoryItem, ctx.booking.item_id)
        if item is not None and item.status == ItemStatus.RESERVED:
            item.status = ItemStatus.AVAILABLE
        metrics_collector.record_inventory_release(ctx.booking.item_type.value)
        logger.info(
            "Inventory released",
            booking_id=str(ctx.booking.id),
            item_id=ctx.booking.item_id,
            start_at=isoformat_z(ctx.booking.start_at),
            end_at=isoformat_z(ctx.booking.end_at),
        )


class ApplyNoShowPolicy(Action):
    action = BookingAction.APPLY_NO_SHOW_POLICY

    async def execute(self, ctx: ActionContext) -> None:
        ctx.booking.no_show_charge = no_show_penalty(ctx.booking.security_deposit)
        logger.info(
            "No-show penalty applied",
            booking_id=str(ctx.booking.id),
            charge=ctx.booking.no_show_charge,
        )


ACTION_HANDLERS: dict[BookingAction, Action] = {
    handler.action: handler
    for handler in (
        NotifyCustomer(),
        UpdateInventoryMetrics(),
        AssignConcierge(),
        NotifyStaff(),
        BeginTracking(),
        RequestReview(),
        UpdateCustomerMetrics(),
        ProcessRefund(),
        ReleaseInventory(),
        ApplyNoShowPolicy(),
    )
}


class ActionDispatcher:
    """Runs the actions for a status change outside the request that caused it."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        notifier: Optional[NotificationClient] = None,
        calendar: Optional[CalendarClient] = None,
        payments: Optional[PaymentClient] = None,
        clock: Clock = utcnow,
    ):
        self.session_factory = session_factory
        self.notifier = notifier or NotificationClient()
        self.calendar = calendar or CalendarClient()
        self.payments = payments or PaymentClient()
        self.clock = clock
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, booking_id: UUID, status: BookingStatus, actor: str) -> asyncio.Task:
        """Start the actions for `status` in the background."""
        task = asyncio.create_task(self.run(booking_id, BookingStatus(status), actor))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        metrics_collector.set_pending_actions(len(self._tasks))
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        metrics_collector.set_pending_actions(len(self._tasks))

    async def drain(self) -> None:
        """Wait for every scheduled action run, including ones scheduled meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run(self, booking_id: UUID, status: BookingStatus, actor: str) -> dict[BookingAction, bool]:
        """Run the actions for `status` in order and sync the calendar afterwards."""
        results = {}
        for action in STATUS_ACTIONS.get(status, ()):
            results[action] = await self._run_action(ACTION_HANDLERS[action], booking_id, status, actor)
        await self._sync_calendar(booking_id, status)
        return results

    async def _run_action(self, handler: Action, booking_id: UUID, status: BookingStatus, actor: str) -> bool:
        async with self.session_factory() as session:
            try:
                booking = await session.get(Booking, booking_id)
                if booking is None:
                    logger.warning("Booking vanished before action ran", booking_id=str(booking_id))
                    return False

                ctx = ActionContext(
                    session=session,
                    booking=booking,
                    status=status,
                    actor=actor,
                    now=self.clock(),
                    notifier=self.notifier,
                    payments=self.payments,
                )
                await handler.execute(ctx)
                await session.commit()
                return True
            except Exception as e:
                await session.rollback()
                metrics_collector.record_action_failure(handler.action.value)
                logger.error(
                    "Status action failed",
                    action=handler.action.value,
                    booking_id=str(booking_id),
                    status=status.value,
                    error=str(e),
                )
                return False

    async def _sync_calendar(self, booking_id: UUID, status: BookingStatus) -> None:
        async with self.session_factory() as session:
            try:
                booking = await session.get(Booking, booking_id)
                if booking is None:
                    return
                if status == BookingStatus.CONFIRMED and not booking.calendar_event_id:
                    event_id = await self.calendar.create_event(booking)
                    if event_id:
                        booking.calendar_event_id = event_id
                elif status in (BookingStatus.CANCELLED, BookingStatus.NO_SHOW):
                    if await self.calendar.delete_event(booking):
                        booking.calendar_event_id = None
                else:
                    await self.calendar.update_event(booking)
                await session.commit()
            except Exception as e:
                await session.rollback()
                metrics_collector.record_action_failure("calendar-sync")
                logger.error("Calendar sync failed", booking_id=str(booking_id), error=str(e))
