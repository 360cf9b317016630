"""Booking and booking modification model definitions."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base
from ..core.timeutils import utcnow
from .customer import CustomerTier
from .inventory import ItemType, enum_values


class BookingStatus(str, Enum):
    """Booking lifecycle states."""
    PENDING_PAYMENT = "pending-payment"
    PAYMENT_PROCESSING = "payment-processing"
    PAYMENT_FAILED = "payment-failed"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready-for-pickup"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    """Payment state recorded on the booking."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially-refunded"


class Booking(Base):
    """A reservation of one inventory item for a date range, or a temporary hold."""

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)

    # Item reference and snapshot taken at creation
    item_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("inventory_items.item_id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_type: Mapped[ItemType] = mapped_column(
        SAEnum(ItemType, native_enum=False, length=20, values_callable=enum_values),
        nullable=False
    )
    item_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Rental window
    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        SAEnum(BookingStatus, native_enum=False, length=32, values_callable=enum_values),
        nullable=False,
        default=BookingStatus.PENDING_PAYMENT,
        index=True
    )

    # Ownership: registered customer or guest contact
    customer_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="SET NULL"), index=True
    )
    guest_first_name: Mapped[Optional[str]] = mapped_column(String(128))
    guest_last_name: Mapped[Optional[str]] = mapped_column(String(128))
    guest_email: Mapped[Optional[str]] = mapped_column(String(255))
    guest_phone: Mapped[Optional[str]] = mapped_column(String(32))

    pickup_location: Mapped[Optional[str]] = mapped_column(String(64))
    service_tier: Mapped[CustomerTier] = mapped_column(
        SAEnum(CustomerTier, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        default=CustomerTier.STANDARD
    )
    special_requests: Mapped[Optional[str]] = mapped_column(Text)

    # Pricing snapshot (minor units)
    base_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rental_days: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    subtotal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    service_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    insurance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    taxes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    security_deposit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Payment
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus, native_enum=False, length=32, values_callable=enum_values),
        nullable=False,
        default=PaymentStatus.PENDING
    )
    payment_intent_id: Mapped[Optional[str]] = mapped_column(String(128))
    paid_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    refunded_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Workflow side effects
    concierge_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("staff_members.id", ondelete="SET NULL")
    )
    tracking_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    no_show_charge: Mapped[Optional[int]] = mapped_column(Integer)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)
    refund_amount: Mapped[Optional[int]] = mapped_column(Integer)
    calendar_event_id: Mapped[Optional[str]] = mapped_column(String(128))
    reminders_sent: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)

    # Temporary hold fields
    is_temporary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, index=True)
    requester_ref: Mapped[Optional[str]] = mapped_column(String(128))

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_booking_end_after_start"),
        CheckConstraint("total >= 0", name="ck_booking_total_non_negative"),
        CheckConstraint("refunded_amount >= 0", name="ck_booking_refunded_non_negative"),
        CheckConstraint(
            "is_temporary OR ((customer_id IS NOT NULL) <> (guest_email IS NOT NULL))",
            name="ck_booking_single_owner"
        ),
        CheckConstraint(
            "NOT is_temporary OR expires_at IS NOT NULL",
            name="ck_booking_temporary_has_expiry"
        ),
        Index("ix_bookings_item_window", "item_id", "start_at", "end_at"),
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_guest(self) -> bool:
        return self.customer_id is None

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, code='{self.code}', item_id='{self.item_id}', "
            f"status={self.status}, temporary={self.is_temporary})>"
        )


class BookingModification(Base):
    """Append-only audit record of a change to a booking."""

    __tablename__ = "booking_modifications"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    actor: Mapped[str] = mapped_column(String(255), nullable=False)
    field: Mapped[str] = mapped_column(String(64), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(Text)
    new_value: Mapped[Optional[str]] = mapped_column(Text)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    # Booking version this change produced; orders changes made within one timestamp
    booking_version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        CheckConstraint("length(actor) > 0", name="ck_booking_modification_actor_not_empty"),
        CheckConstraint("length(field) > 0", name="ck_booking_modification_field_not_empty"),
    )

    def __repr__(self) -> str:
        return (
            f"<BookingModification(booking_id={self.booking_id}, field='{self.field}', "
            f"{self.old_value!r} -> {self.new_value!r}, actor='{self.actor}')>"
        )
