"""Inventory item and blackout period model definitions."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from ..core.timeutils import utcnow


def enum_values(enum_cls) -> list[str]:
    """Persist enum values rather than member names."""
    return [member.value for member in enum_cls]


class ItemType(str, Enum):
    """Rentable item categories."""
    CARS = "cars"
    YACHTS = "yachts"
    JETS = "jets"
    PROPERTIES = "properties"


class ItemStatus(str, Enum):
    """Operational status of an inventory item."""
    AVAILABLE = "available"
    RENTED = "rented"
    MAINTENANCE = "maintenance"
    RESERVED = "reserved"
    RETIRED = "retired"
    DAMAGED = "damaged"


DEFAULT_PRICING_TIERS = {"standard": 1.0, "premium": 1.3, "vvip": 1.8}
DEFAULT_SEASONAL_MULTIPLIERS = {"peak": 1.5, "high": 1.25, "standard": 1.0, "low": 0.85}


class InventoryItem(Base):
    """A rentable car, yacht, jet or property."""

    __tablename__ = "inventory_items"

    item_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Descriptive fields
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_type: Mapped[ItemType] = mapped_column(
        SAEnum(ItemType, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        index=True
    )
    category: Mapped[Optional[str]] = mapped_column(String(64))
    brand: Mapped[Optional[str]] = mapped_column(String(128))
    model: Mapped[Optional[str]] = mapped_column(String(128))
    year: Mapped[Optional[int]] = mapped_column(Integer)
    description: Mapped[Optional[str]] = mapped_column(Text)
    specifications: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    primary_location: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Availability
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[ItemStatus] = mapped_column(
        SAEnum(ItemStatus, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        default=ItemStatus.AVAILABLE
    )
    minimum_rental_days: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Pricing (minor units)
    base_price: Mapped[int] = mapped_column(Integer, nullable=False)
    security_deposit: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    insurance_rate: Mapped[float] = mapped_column(Numeric(5, 4, asdecimal=False), nullable=False, default=0.15)
    pricing_tiers: Mapped[dict[str, float]] = mapped_column(
        JSON, nullable=False, default=lambda: dict(DEFAULT_PRICING_TIERS)
    )
    seasonal_multipliers: Mapped[dict[str, float]] = mapped_column(
        JSON, nullable=False, default=lambda: dict(DEFAULT_SEASONAL_MULTIPLIERS)
    )

    # Usage metrics
    total_bookings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_revenue: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_booked_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("base_price >= 0", name="ck_inventory_item_base_price_non_negative"),
        CheckConstraint("security_deposit >= 0", name="ck_inventory_item_deposit_non_negative"),
        CheckConstraint("minimum_rental_days >= 1", name="ck_inventory_item_minimum_rental_positive"),
        CheckConstraint("length(currency) = 3", name="ck_inventory_item_currency_length"),
    )

    blackout_periods: Mapped[list["BlackoutPeriod"]] = relationship(
        "BlackoutPeriod",
        back_populates="item",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BlackoutPeriod.start_at"
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryItem(item_id='{self.item_id}', type={self.item_type}, "
            f"status={self.status}, active={self.is_active})>"
        )


class BlackoutPeriod(Base):
    """An interval during which an item cannot be booked regardless of bookings."""

    __tablename__ = "blackout_periods"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    item_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("inventory_items.item_id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    reason: Mapped[str] = mapped_column(String(255), nullable=False, default="maintenance")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_blackout_period_end_after_start"),
    )

    item: Mapped["InventoryItem"] = relationship("InventoryItem", back_populates="blackout_periods")

    def __repr__(self) -> str:
        return f"<BlackoutPeriod(item_id='{self.item_id}', start={self.start_at}, end={self.end_at})>"
