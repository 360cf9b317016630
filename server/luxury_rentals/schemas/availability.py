"""Availability-related Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from ..models.booking import BookingStatus
from ..models.inventory import ItemType


class AvailabilityCode(str, Enum):
    """Reason codes for an unavailable result."""
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    ITEM_INACTIVE = "ITEM_INACTIVE"
    ITEM_STATUS_UNAVAILABLE = "ITEM_STATUS_UNAVAILABLE"
    BLACKOUT_PERIOD = "BLACKOUT_PERIOD"
    MINIMUM_RENTAL_NOT_MET = "MINIMUM_RENTAL_NOT_MET"
    INVALID_DATES = "INVALID_DATES"
    BOOKING_CONFLICT = "BOOKING_CONFLICT"
    SYSTEM_ERROR = "SYSTEM_ERROR"


class CheckAvailabilityRequest(BaseModel):
    """Request schema for checking one item."""

    item_id: str = Field(..., min_length=1, max_length=64, description="Item to check")
    start_date: str = Field(..., description="Rental start (ISO 8601)")
    end_date: str = Field(..., description="Rental end (ISO 8601)")
    exclude_booking_id: Optional[str] = Field(None, description="Booking to ignore when looking for conflicts")


class CheckMultipleAvailabilityRequest(BaseModel):
    """Request schema for checking several items over one date range."""

    item_ids: List[str] = Field(..., min_length=1, max_length=50, description="Items to check")
    start_date: str = Field(..., description="Rental start (ISO 8601)")
    end_date: str = Field(..., description="Rental end (ISO 8601)")


class AvailabilityCalendarRequest(BaseModel):
    """Request schema for the calendar projection of one item."""

    item_id: str = Field(..., min_length=1, max_length=64)
    start_date: datetime = Field(..., description="Calendar range start (ISO 8601)")
    end_date: datetime = Field(..., description="Calendar range end (ISO 8601)")


class CreateTemporaryReservationRequest(BaseModel):
    """Request schema for holding an item during checkout."""

    item_id: str = Field(..., min_length=1, max_length=64)
    start_date: str = Field(..., description="Rental start (ISO 8601)")
    end_date: str = Field(..., description="Rental end (ISO 8601)")
    requester_id: str = Field(..., min_length=1, max_length=128, description="Customer or session holding the item")
    duration_minutes: int = Field(15, ge=5, le=30, description="Hold duration in minutes")


class ItemSummary(BaseModel):
    """Snapshot of the item returned with a positive result."""

    item_id: str
    name: str
    item_type: ItemType
    category: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    primary_location: str
    specifications: dict[str, Any] = Field(default_factory=dict)


class Pricing(BaseModel):
    """Price quote in minor units."""

    base_price: int = Field(..., description="Per-day price after tier and seasonal multipliers")
    days: int
    subtotal: int
    tier_multiplier: float
    seasonal_multiplier: float
    season: str
    security_deposit: int
    insurance: int
    currency: str


class ConflictSummary(BaseModel):
    """An existing booking or live hold that blocks the request."""

    booking_id: str
    code: str
    start_at: datetime
    end_at: datetime
    status: BookingStatus
    temporary: bool = False


class AvailabilityResult(BaseModel):
    """Outcome of an availability check; negative outcomes carry a code and details."""

    item_id: str
    available: bool
    code: Optional[AvailabilityCode] = None
    reason: Optional[str] = None
    errors: Optional[List[str]] = None
    blackout_reason: Optional[str] = None
    minimum_days: Optional[int] = None
    conflicts: Optional[List[ConflictSummary]] = None
    item: Optional[ItemSummary] = None
    pricing: Optional[Pricing] = None
    buffer_hours: Optional[float] = None


class AvailabilitySummary(BaseModel):
    total: int
    available: int
    unavailable: int


class MultiAvailabilityResult(BaseModel):
    """Results of checking several items, partitioned by outcome."""

    available: List[AvailabilityResult]
    unavailable: List[AvailabilityResult]
    summary: AvailabilitySummary


class CalendarBooking(BaseModel):
    booking_id: str
    code: str
    start_at: datetime
    end_at: datetime
    status: BookingStatus
    entry_type: str = Field("booking", description="'booking' or 'temporary-hold'")


class CalendarBlackout(BaseModel):
    start_at: datetime
    end_at: datetime
    reason: str
    entry_type: str = "blackout"


class AvailabilityCalendar(BaseModel):
    """Calendar projection of bookings and blackouts within a range."""

    item_id: str
    item_name: str
    start_date: datetime
    end_date: datetime
    bookings: List[CalendarBooking]
    blackout_dates: List[CalendarBlackout]
    buffer_hours: float


class TemporaryReservation(BaseModel):
    """A short-lived hold created during checkout."""

    reservation_id: str
    item_id: str
    start_at: datetime
    end_at: datetime
    expires_at: datetime
    requester_id: str
    pricing: Optional[Pricing] = None
