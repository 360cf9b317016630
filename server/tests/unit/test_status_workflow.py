"""Unit tests for status updates, history and the actions they trigger."""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from luxury_rentals.core.exceptions import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from luxury_rentals.models import (
    Booking,
    BookingModification,
    BookingStatus,
    CustomerTier,
    InventoryItem,
    ItemStatus,
    PaymentStatus,
)
from luxury_rentals.services.booking_policy import TERMINAL_STATUSES
from luxury_rentals.services.status_actions import BookingAction
from luxury_rentals.services.status_service import BookingStatusService

from conftest import FIXED_NOW, RecordingPayments, fixed_clock

START = FIXED_NOW + timedelta(days=10)
END = START + timedelta(days=3)


@pytest.fixture
def service(test_session):
    return BookingStatusService(test_session, clock=fixed_clock)


@pytest.fixture
def workflow(test_session, dispatcher):
    """Status service whose changes dispatch actions to the recording collaborators."""
    return BookingStatusService(test_session, dispatcher, clock=fixed_clock)


@pytest.mark.asyncio
async def test_valid_transition_is_recorded(service, test_session, make_item, make_booking):
    """Test a manual status change and its audit row."""
    item = await make_item()
    booking = await make_booking(item, START, END, status=BookingStatus.PENDING_PAYMENT)

    updated = await service.update_status(booking.id, "payment-processing", "staff-1", reason="card submitted")

    assert updated.status == BookingStatus.PAYMENT_PROCESSING
    assert updated.updated_at == FIXED_NOW

    rows = (await test_session.execute(
        select(BookingModification).where(BookingModification.booking_id == booking.id)
    )).scalars().all()
    assert [(r.field, r.old_value, r.new_value, r.actor, r.reason) for r in rows] == [
        ("status", "pending-payment", "payment-processing", "staff-1", "card submitted"),
    ]


@pytest.mark.asyncio
async def test_invalid_transition_is_rejected(service, test_session, make_item, make_booking):
    item = await make_item()
    booking = await make_booking(item, START, END, status=BookingStatus.CONFIRMED)

    with pytest.raises(InvalidTransitionError) as exc_info:
        await service.update_status(str(booking.id), BookingStatus.COMPLETED, "staff-1")

    details = exc_info.value.problem_details
    assert exc_info.value.status_code == 409
    assert details["current_status"] == "confirmed"
    assert details["allowed_transitions"] == ["cancelled", "preparing"]

    await test_session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
@pytest.mark.parametrize("target", list(BookingStatus))
@pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
async def test_terminal_status_is_final(service, test_session, make_item, make_booking, terminal, target):
    """No move out of a terminal status is accepted, and nothing is written."""
    item = await make_item()
    booking = await make_booking(item, START, END, status=terminal)

    with pytest.raises(InvalidTransitionError) as exc_info:
        await service.update_status(booking.id, target, "staff-1")
    assert exc_info.value.problem_details["allowed_transitions"] == []

    await test_session.refresh(booking)
    assert booking.status == terminal
    assert booking.version == 1
    rows = (await test_session.execute(
        select(BookingModification).where(BookingModification.booking_id == booking.id)
    )).scalars().all()
    assert rows == []


@pytest.mark.asyncio
async def test_unknown_status_and_booking(service, make_item, make_booking):
    item = await make_item()
    booking = await make_booking(item, START, END)

    with pytest.raises(ValidationError):
        await service.update_status(booking.id, "teleported", "staff-1")
    with pytest.raises(NotFoundError):
        await service.update_status("not-a-uuid", BookingStatus.PREPARING, "staff-1")
    with pytest.raises(NotFoundError):
        await service.update_status("00000000-0000-0000-0000-000000000000", BookingStatus.PREPARING, "staff-1")


@pytest.mark.asyncio
async def test_temporary_hold_has_no_workflow(service, make_item, make_booking):
    item = await make_item()
    hold = await make_booking(
        item, START, END,
        status=BookingStatus.PENDING_PAYMENT,
        is_temporary=True,
        expires_at=FIXED_NOW + timedelta(minutes=10),
        guest_email=None,
    )

    with pytest.raises(ConflictError):
        await service.update_status(hold.id, BookingStatus.PAYMENT_PROCESSING, "staff-1")


@pytest.mark.asyncio
async def test_metadata_is_applied_and_audited(service, test_session, make_item, make_booking):
    item = await make_item()
    booking = await make_booking(item, START, END, status=BookingStatus.PAYMENT_PROCESSING)

    updated = await service.update_status(
        booking.id,
        BookingStatus.PAYMENT_FAILED,
        "payments",
        metadata={"payment_status": "failed", "payment_intent_id": "pi_123"},
    )

    assert updated.payment_status == PaymentStatus.FAILED
    assert updated.payment_intent_id == "pi_123"
    fields = (await test_session.execute(
        select(BookingModification.field).where(BookingModification.booking_id == booking.id)
    )).scalars().all()
    assert sorted(fields) == ["payment_intent_id", "payment_status", "status"]


@pytest.mark.asyncio
async def test_bad_metadata_rejects_whole_update(service, test_session, make_item, make_booking):
    item = await make_item()
    booking = await make_booking(item, START, END, status=BookingStatus.CONFIRMED)

    with pytest.raises(ValidationError):
        await service.update_status(booking.id, BookingStatus.PREPARING, "staff-1", metadata={"total": 1})

    await test_session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_confirming_rechecks_double_booking(service, make_item, make_booking):
    item = await make_item()
    await make_booking(item, START, END, status=BookingStatus.CONFIRMED)
    pending = await make_booking(
        item, START + timedelta(days=1), END + timedelta(days=1), status=BookingStatus.PAYMENT_PROCESSING
    )

    with pytest.raises(ConflictError) as exc_info:
        await service.update_status(pending.id, BookingStatus.CONFIRMED, "payments")
    assert not isinstance(exc_info.value, InvalidTransitionError)


@pytest.mark.asyncio
async def test_stale_version_is_a_conflict(service, test_session, session_factory, make_item, make_booking, monkeypatch):
    """A writer that commits between our read and our write wins; we get a 409."""
    item = await make_item()
    booking = await make_booking(item, START, END, status=BookingStatus.CONFIRMED)
    original_load = service._load

    async def load_then_race(booking_id, for_update=False):
        loaded = await original_load(booking_id, for_update)
        async with session_factory() as other:
            await other.execute(
                update(Booking)
                .where(Booking.id == booking_id)
                .values(version=Booking.version + 1)
                .execution_options(synchronize_session=False)
            )
            await other.commit()
        return loaded

    monkeypatch.setattr(service, "_load", load_then_race)

    with pytest.raises(ConflictError) as exc_info:
        await service.update_status(booking.id, BookingStatus.PREPARING, "staff-1")
    assert "modified concurrently" in exc_info.value.problem_details["detail"]


@pytest.mark.asyncio
async def test_status_history(service, make_item, make_booking):
    item = await make_item()
    booking = await make_booking(item, START, END, status=BookingStatus.PENDING_PAYMENT)

    await service.update_status(booking.id, BookingStatus.PAYMENT_PROCESSING, "payments")
    later = BookingStatusService(service.db, clock=lambda: FIXED_NOW + timedelta(minutes=5))
    await later.update_status(booking.id, BookingStatus.CONFIRMED, "payments", reason="captured")

    history = await service.get_status_history(str(booking.id))

    assert history.current_status == BookingStatus.CONFIRMED
    assert [(e.status, e.actor, e.reason) for e in history.history] == [
        (BookingStatus.PENDING_PAYMENT, "system", "Booking created"),
        (BookingStatus.PAYMENT_PROCESSING, "payments", None),
        (BookingStatus.CONFIRMED, "payments", "captured"),
    ]
    assert history.history[0].timestamp == booking.created_at


@pytest.mark.asyncio
async def test_history_orders_changes_made_in_the_same_instant(service, test_session, make_item, make_booking):
    """Changes sharing a timestamp are ordered by the booking version they produced."""
    item = await make_item()
    booking = await make_booking(item, START, END, status=BookingStatus.PENDING_PAYMENT)
    for status in (BookingStatus.PAYMENT_PROCESSING, BookingStatus.CONFIRMED, BookingStatus.PREPARING):
        await service.update_status(booking.id, status, "staff-1")

    rows = (await test_session.execute(
        select(BookingModification).where(BookingModification.booking_id == booking.id)
    )).scalars().all()
    assert sorted(r.booking_version for r in rows) == [2, 3, 4]
    assert {r.created_at for r in rows} == {FIXED_NOW}

    # Rows written out of order still read back in version order
    other = await make_booking(item, END + timedelta(days=5), END + timedelta(days=6), status=BookingStatus.PREPARING)
    for version, old, new in (
        (4, "confirmed", "preparing"),
        (2, "pending-payment", "payment-processing"),
        (3, "payment-processing", "confirmed"),
    ):
        test_session.add(BookingModification(
            booking_id=other.id,
            actor="staff-1",
            field="status",
            old_value=old,
            new_value=new,
            booking_version=version,
            created_at=FIXED_NOW,
        ))
    await test_session.commit()

    history = await service.get_status_history(other.id)
    assert [e.status for e in history.history] == [
        BookingStatus.PENDING_PAYMENT,
        BookingStatus.PAYMENT_PROCESSING,
        BookingStatus.CONFIRMED,
        BookingStatus.PREPARING,
    ]


@pytest.mark.asyncio
async def test_history_of_unknown_booking(service):
    with pytest.raises(NotFoundError):
        await service.get_status_history("00000000-0000-0000-0000-000000000000")


@pytest.mark.asyncio
async def test_confirmation_actions(
    workflow, test_session, dispatcher, notifier, calendar, make_item, make_booking, make_staff
):
    """Confirming notifies the guest, counts the booking and assigns a concierge."""
    item = await make_item()
    await make_staff(email="elsewhere@example.com", preferred_locations=["aspen"])
    concierge = await make_staff()
    booking = await make_booking(item, START, END, status=BookingStatus.PAYMENT_PROCESSING, pickup_location="miami")

    await workflow.update_status(booking.id, BookingStatus.CONFIRMED, "payments")
    await dispatcher.drain()

    await test_session.refresh(booking)
    stored_item = await test_session.get(InventoryItem, item.item_id, populate_existing=True)
    assert booking.concierge_id == concierge.id
    assert booking.calendar_event_id == f"evt-{booking.code}"
    assert stored_item.total_bookings == 1
    assert stored_item.total_revenue == booking.total
    assert stored_item.last_booked_at == FIXED_NOW

    confirmed = notifier.of_type("booking_confirmed")
    assert len(confirmed) == 1
    assert confirmed[0]["recipient"] == "grace@example.com"
    assert confirmed[0]["data"]["customer_name"] == "Grace Hopper"
    assert notifier.of_type("concierge_new_assignment")[0]["recipient"] == "concierge@example.com"
    assert calendar.calls == [("create", booking.code)]


@pytest.mark.asyncio
async def test_preparing_notifies_assigned_concierge(workflow, dispatcher, notifier, make_item, make_booking, make_staff):
    item = await make_item()
    concierge = await make_staff()
    booking = await make_booking(item, START, END, concierge_id=concierge.id, special_requests="Champagne")

    await workflow.update_status(booking.id, BookingStatus.PREPARING, "system")
    await dispatcher.drain()

    staff_notice = notifier.of_type("concierge_preparation_required")
    assert staff_notice[0]["recipient"] == concierge.email
    assert staff_notice[0]["data"]["special_requests"] == "Champagne"
    assert len(notifier.of_type("booking_preparing")) == 1


@pytest.mark.asyncio
async def test_in_progress_begins_tracking(workflow, test_session, dispatcher, make_item, make_booking):
    item = await make_item()
    booking = await make_booking(item, START, END, status=BookingStatus.READY_FOR_PICKUP)

    await workflow.update_status(booking.id, BookingStatus.IN_PROGRESS, "staff-1")
    await dispatcher.drain()

    await test_session.refresh(booking)
    assert booking.tracking_started_at == FIXED_NOW


@pytest.mark.asyncio
async def test_completion_updates_customer_metrics(
    workflow, test_session, dispatcher, notifier, make_item, make_booking, make_customer
):
    """Points accrue at the old tier; the tier is then raised by lifetime spend."""
    item = await make_item()
    customer = await make_customer(total_spent=2_000_000, total_bookings=1)
    booking = await make_booking(
        item, START, END,
        status=BookingStatus.IN_PROGRESS,
        customer_id=customer.id,
        total=885200,
    )

    await workflow.update_status(booking.id, BookingStatus.COMPLETED, "system")
    await dispatcher.drain()

    await test_session.refresh(customer)
    assert customer.total_bookings == 2
    assert customer.total_spent == 2_885_200
    assert customer.lifetime_value == 2_885_200
    assert customer.average_booking_value == 1_442_600
    assert customer.loyalty_points == 8852
    assert customer.tier == CustomerTier.PREMIUM
    assert customer.last_booking_at == FIXED_NOW
    assert notifier.of_type("booking_completed")[0]["recipient"] == customer.email
    assert notifier.of_type("review_request")[0]["recipient"] == customer.email


@pytest.mark.asyncio
async def test_customer_tier_never_drops(workflow, test_session, dispatcher, make_item, make_booking, make_customer):
    item = await make_item()
    customer = await make_customer(tier=CustomerTier.VVIP)
    booking = await make_booking(item, START, END, status=BookingStatus.IN_PROGRESS, customer_id=customer.id, total=1000)

    await workflow.update_status(booking.id, BookingStatus.COMPLETED, "system")
    await dispatcher.drain()

    await test_session.refresh(customer)
    assert customer.tier == CustomerTier.VVIP
    assert customer.loyalty_points == 20


@pytest.mark.asyncio
async def test_cancellation_refunds_and_releases(
    workflow, test_session, dispatcher, notifier, payments, calendar, make_item, make_booking
):
    item = await make_item(status=ItemStatus.RESERVED)
    booking = await make_booking(
        item, START, END,
        payment_status=PaymentStatus.COMPLETED,
        paid_amount=885200,
        calendar_event_id="evt-1",
    )

    await workflow.update_status(
        booking.id, BookingStatus.CANCELLED, "staff-1", metadata={"refund_amount": 365940}
    )
    await dispatcher.drain()

    await test_session.refresh(booking)
    stored_item = await test_session.get(InventoryItem, item.item_id, populate_existing=True)
    assert payments.refunds == [(booking.code, 365940)]
    assert booking.refunded_amount == 365940
    assert booking.payment_status == PaymentStatus.PARTIALLY_REFUNDED
    assert booking.calendar_event_id is None
    assert stored_item.status == ItemStatus.AVAILABLE
    assert notifier.of_type("booking_cancelled")[0]["data"]["refund_amount"] == 365940
    assert calendar.calls == [("delete", booking.code)]


@pytest.mark.asyncio
async def test_unpaid_cancellation_skips_refund(workflow, dispatcher, payments, make_item, make_booking):
    item = await make_item()
    booking = await make_booking(item, START, END, status=BookingStatus.PENDING_PAYMENT)

    await workflow.update_status(booking.id, BookingStatus.CANCELLED, "staff-1")
    await dispatcher.drain()

    assert payments.refunds == []


@pytest.mark.asyncio
async def test_failed_action_does_not_block_the_rest(
    test_session, session_factory, notifier, calendar, make_item, make_booking
):
    """A refused refund is logged; inventory is still released and the customer notified."""
    from luxury_rentals.services.status_actions import ActionDispatcher

    dispatcher = ActionDispatcher(
        session_factory, notifier, calendar, RecordingPayments(succeed=False), clock=fixed_clock
    )
    item = await make_item(status=ItemStatus.RESERVED)
    booking = await make_booking(
        item, START, END, payment_status=PaymentStatus.COMPLETED, paid_amount=885200
    )
    service = BookingStatusService(test_session, clock=fixed_clock)

    await service.update_status(booking.id, BookingStatus.CANCELLED, "staff-1")
    results = await dispatcher.run(booking.id, BookingStatus.CANCELLED, "staff-1")

    assert results == {
        BookingAction.PROCESS_REFUND: False,
        BookingAction.RELEASE_INVENTORY: True,
        BookingAction.NOTIFY_CUSTOMER: True,
    }
    await test_session.refresh(booking)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.payment_status == PaymentStatus.COMPLETED
    assert booking.refunded_amount == 0


@pytest.mark.asyncio
async def test_no_show_applies_penalty(
    workflow, test_session, dispatcher, notifier, calendar, make_item, make_booking
):
    item = await make_item()
    booking = await make_booking(item, START, END, status=BookingStatus.READY_FOR_PICKUP)

    await workflow.update_status(booking.id, BookingStatus.NO_SHOW, "system")
    await dispatcher.drain()

    await test_session.refresh(booking)
    assert booking.no_show_charge == 250000
    assert calendar.calls == [("delete", booking.code)]
    assert notifier.of_type("booking_no_show")[0]["recipient"] == "grace@example.com"
