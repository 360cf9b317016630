"""Booking-related Pydantic schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from ..models.booking import BookingStatus, PaymentStatus
from ..models.customer import CustomerTier
from ..models.inventory import ItemType


class GuestDetails(BaseModel):
    """Contact details for a booking made without an account."""

    first_name: str = Field(..., min_length=1, max_length=128)
    last_name: str = Field(..., min_length=1, max_length=128)
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: Optional[str] = Field(None, max_length=32)


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking."""

    item_id: str = Field(..., min_length=1, max_length=64, description="Item to book")
    start_date: datetime = Field(..., description="Rental start (ISO 8601)")
    end_date: datetime = Field(..., description="Rental end (ISO 8601)")
    guest: Optional[GuestDetails] = Field(None, description="Guest contact, required without a bearer token")
    pickup_location: Optional[str] = Field(None, max_length=64, description="Pickup city or region")
    special_requests: Optional[str] = Field(None, max_length=2000)
    hold_id: Optional[str] = Field(None, description="Temporary hold to convert into this booking")
    requester_id: Optional[str] = Field(
        None, max_length=128, description="Customer or session that placed the hold, for guest checkouts"
    )

    @model_validator(mode="after")
    def check_dates(self) -> "CreateBookingRequest":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking."""

    booking_id: str = Field(..., description="Booking to retrieve")


class CancelBookingRequest(BaseModel):
    """Request schema for a customer cancellation."""

    booking_id: str = Field(..., description="Booking to cancel")
    reason: Optional[str] = Field(None, max_length=1000, description="Why the booking is cancelled")


class UpdateStatusRequest(BaseModel):
    """Request schema for a manual status change."""

    booking_id: str = Field(..., description="Booking to update")
    status: BookingStatus = Field(..., description="Requested status")
    reason: Optional[str] = Field(None, max_length=1000)
    metadata: Optional[Dict[str, Any]] = Field(None, description="Booking fields to update with the status")


class StatusHistoryRequest(BaseModel):
    """Request schema for the status history of a booking."""

    booking_id: str = Field(..., description="Booking whose history to read")


class BookingPricing(BaseModel):
    """Charges recorded on the booking, in minor units."""

    base_price: int
    rental_days: int
    subtotal: int
    service_fee: int
    insurance: int
    taxes: int
    security_deposit: int
    total: int
    currency: str


class PaymentSummary(BaseModel):
    status: PaymentStatus
    paid_amount: int
    refunded_amount: int


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    code: str = Field(..., description="Booking confirmation code")
    item_id: str
    item_name: str
    item_type: ItemType
    start_at: datetime
    end_at: datetime
    status: BookingStatus
    customer_id: Optional[str] = None
    guest_email: Optional[str] = None
    pickup_location: Optional[str] = None
    service_tier: CustomerTier
    pricing: BookingPricing
    payment: PaymentSummary
    concierge_id: Optional[str] = None
    refund_amount: Optional[int] = None
    no_show_charge: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class StatusHistoryEntry(BaseModel):
    status: BookingStatus
    timestamp: datetime
    actor: str
    reason: Optional[str] = None


class StatusHistory(BaseModel):
    """Ordered status changes of a booking, starting with its creation."""

    booking_id: str
    current_status: BookingStatus
    history: List[StatusHistoryEntry]
