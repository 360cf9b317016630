"""
Periodic sweep driving time-based status changes, pickup reminders and hold cleanup.

Only one sweep runs at a time: an in-process lock covers the worker and the
manual trigger endpoint, and a session-level advisory lock covers other
processes on PostgreSQL.
"""

import asyncio
import time
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.database import is_postgresql
from ..core.exceptions import ProblemDetailsException
from ..core.observability import get_logger, metrics_collector
from ..core.timeutils import Clock, hours_between, utcnow
from ..models.booking import Booking, BookingStatus
from ..schemas.scheduler import CleanupCounts, ReminderCounts, StatusUpdateCounts, SweepSummary
from .availability_service import AvailabilityService
from .integrations import NotificationClient
from .status_actions import ActionDispatcher, resolve_contact, template_data
from .status_service import SYSTEM_ACTOR, BookingStatusService, next_automatic_status

logger = get_logger(__name__)

SWEEP_LOCK_KEY = "booking-status-sweep"

REMINDER_HOURS = (24, 4, 1)
REMINDER_TOLERANCE = timedelta(minutes=30)

AUTOMATIC_STATUSES = (
    BookingStatus.CONFIRMED,
    BookingStatus.PREPARING,
    BookingStatus.READY_FOR_PICKUP,
    BookingStatus.IN_PROGRESS,
)

REMINDER_STATUSES = (
    BookingStatus.CONFIRMED,
    BookingStatus.PREPARING,
    BookingStatus.READY_FOR_PICKUP,
)

AUTOMATIC_REASONS = {
    BookingStatus.PREPARING: "Automatic: preparation window reached",
    BookingStatus.READY_FOR_PICKUP: "Automatic: pickup window reached",
    BookingStatus.IN_PROGRESS: "Automatic: rental started",
    BookingStatus.NO_SHOW: "Automatic: customer did not pick up within the grace period",
    BookingStatus.COMPLETED: "Automatic: rental finished",
}


class StatusScheduler:
    """Runs the automatic status sweep; share one instance per process."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        dispatcher: Optional[ActionDispatcher] = None,
        notifier: Optional[NotificationClient] = None,
        clock: Clock = utcnow,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.notifier = notifier or (dispatcher.notifier if dispatcher else NotificationClient())
        self.clock = clock
        self._lock = asyncio.Lock()

    async def run_sweep(self, now: Optional[datetime] = None) -> SweepSummary:
        """
        Apply due automatic transitions, send reminders and remove expired holds.

        Returns a summary flagged `skipped` when another sweep holds the lock.
        """
        now = now or self.clock()
        if self._lock.locked():
            logger.info("Sweep already running; skipping")
            return SweepSummary(skipped=True, timestamp=now)

        async with self._lock:
            async with self.session_factory() as lock_session:
                if not await self._try_global_lock(lock_session):
                    logger.info("Sweep running in another process; skipping")
                    return SweepSummary(skipped=True, timestamp=now)

                started = time.monotonic()
                try:
                    summary = SweepSummary(
                        status_updates=await self.process_automatic_transitions(now),
                        reminders=await self.send_reminders(now),
                        cleanup=CleanupCounts(expired_reservations=await self.cleanup_expired_holds(now)),
                        timestamp=now,
                    )
                finally:
                    await self._release_global_lock(lock_session)
                    metrics_collector.observe_sweep_duration(time.monotonic() - started)

        logger.info(
            "Sweep completed",
            processed=summary.status_updates.processed,
            failed=summary.status_updates.failed,
            reminders_sent=summary.reminders.sent,
            expired_reservations=summary.cleanup.expired_reservations,
        )
        return summary

    async def _try_global_lock(self, session: AsyncSession) -> bool:
        if not is_postgresql(session):
            return True
        result = await session.execute(
            text("SELECT pg_try_advisory_lock(hashtext(:lock_key))"), {"lock_key": SWEEP_LOCK_KEY}
        )
        return bool(result.scalar())

    async def _release_global_lock(self, session: AsyncSession) -> None:
        if is_postgresql(session):
            await session.execute(
                text("SELECT pg_advisory_unlock(hashtext(:lock_key))"), {"lock_key": SWEEP_LOCK_KEY}
            )
            await session.commit()

    async def process_automatic_transitions(self, now: datetime) -> StatusUpdateCounts:
        """Move every booking whose time-based trigger has fired one step forward."""
        async with self.session_factory() as session:
            stmt = select(
                Booking.id, Booking.status, Booking.item_type, Booking.start_at, Booking.end_at
            ).where(
                Booking.is_temporary.is_(False),
                Booking.status.in_(AUTOMATIC_STATUSES),
            )
            candidates = (await session.execute(stmt)).all()

        counts = StatusUpdateCounts()
        for row in candidates:
            target = next_automatic_status(row.status, row.item_type, row.start_at, row.end_at, now)
            if target is None:
                continue

            async with self.session_factory() as session:
                service = BookingStatusService(session, self.dispatcher, clock=lambda: now)
                try:
                    await service.update_status(row.id, target, SYSTEM_ACTOR, reason=AUTOMATIC_REASONS[target])
                    counts.processed += 1
                except ProblemDetailsException as e:
                    counts.failed += 1
                    counts.errors.append(f"{row.id}: {e.problem_details.get('detail', e.title)}")
                    logger.warning(
                        "Automatic transition failed",
                        booking_id=str(row.id),
                        target_status=target.value,
                        error=e.problem_details.get("detail"),
                    )
                except SQLAlchemyError as e:
                    await session.rollback()
                    counts.failed += 1
                    counts.errors.append(f"{row.id}: {e}")
                    logger.error("Automatic transition failed", booking_id=str(row.id), error=str(e))

        return counts

    async def send_reminders(self, now: datetime) -> ReminderCounts:
        """
        Send pickup reminders 24, 4 and 1 hours before start.

        A reminder is due when the start is within half an hour of its mark and
        is sent at most once per booking.
        """
        counts = ReminderCounts()
        horizon = now + timedelta(hours=max(REMINDER_HOURS)) + REMINDER_TOLERANCE
        tolerance_hours = REMINDER_TOLERANCE.total_seconds() / 3600

        async with self.session_factory() as session:
            stmt = (
                select(Booking)
                .where(
                    Booking.is_temporary.is_(False),
                    Booking.status.in_(REMINDER_STATUSES),
                    Booking.start_at > now,
                    Booking.start_at <= horizon,
                )
                .order_by(Booking.start_at)
            )
            bookings = list((await session.execute(stmt)).scalars())

            for booking in bookings:
                hours_until_start = hours_between(booking.start_at, now)
                due = [
                    mark for mark in REMINDER_HOURS
                    if abs(hours_until_start - mark) <= tolerance_hours and mark not in (booking.reminders_sent or [])
                ]
                if not due:
                    continue

                contact = await resolve_contact(session, booking)
                if contact is None or not contact.reminders_enabled:
                    continue

                for mark in due:
                    delivered = await self.notifier.send(
                        "pickup_reminder",
                        contact.email,
                        template_data(booking, contact, hours_before=mark),
                    )
                    if delivered:
                        booking.reminders_sent = [*(booking.reminders_sent or []), mark]
                        counts.sent += 1
                        metrics_collector.record_reminder_sent(mark)
                    else:
                        counts.failed += 1

            await session.commit()

        return counts

    async def cleanup_expired_holds(self, now: datetime) -> int:
        async with self.session_factory() as session:
            return await AvailabilityService(session, self.clock).cleanup_expired_reservations(now)
