"""Customer and staff member model definitions."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Integer, String, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base
from ..core.timeutils import utcnow
from .inventory import enum_values


class CustomerTier(str, Enum):
    """Service tier driving pricing multipliers and loyalty accrual."""
    STANDARD = "standard"
    PREMIUM = "premium"
    VVIP = "vvip"


class StaffRole(str, Enum):
    """Staff roles known to the booking workflow."""
    CONCIERGE = "concierge"
    ADMIN = "admin"


class Customer(Base):
    """Registered customer with lifetime booking metrics."""

    __tablename__ = "customers"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32))

    tier: Mapped[CustomerTier] = mapped_column(
        SAEnum(CustomerTier, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        default=CustomerTier.STANDARD
    )

    # Metrics (minor units)
    total_bookings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_booking_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    loyalty_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_booking_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    booking_reminders_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("total_spent >= 0", name="ck_customer_total_spent_non_negative"),
        CheckConstraint("loyalty_points >= 0", name="ck_customer_loyalty_points_non_negative"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, email='{self.email}', tier={self.tier})>"


class StaffMember(Base):
    """Staff directory entry used for concierge assignment."""

    __tablename__ = "staff_members"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[StaffRole] = mapped_column(
        SAEnum(StaffRole, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        default=StaffRole.CONCIERGE,
        index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    preferred_locations: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<StaffMember(id={self.id}, email='{self.email}', role={self.role})>"
