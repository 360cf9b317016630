"""Inventory-related Pydantic schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..models.inventory import ItemStatus, ItemType
from .common import Money


class CreateInventoryItemRequest(BaseModel):
    """Request schema for registering a rentable item."""

    item_id: str = Field(..., min_length=1, max_length=64, description="Business identifier, stored upper-case")
    name: str = Field(..., min_length=1, max_length=255)
    item_type: ItemType
    category: Optional[str] = Field(None, max_length=64)
    brand: Optional[str] = Field(None, max_length=128)
    model: Optional[str] = Field(None, max_length=128)
    year: Optional[int] = Field(None, ge=1900, le=2100)
    description: Optional[str] = None
    specifications: Dict[str, Any] = Field(default_factory=dict)
    primary_location: str = Field(..., min_length=1, max_length=64)
    minimum_rental_days: int = Field(1, ge=1, le=365)
    base_price: Money = Field(..., description="Price per day")
    security_deposit: Money
    insurance_rate: float = Field(0.15, ge=0, le=1)
    pricing_tiers: Optional[Dict[str, float]] = None
    seasonal_multipliers: Optional[Dict[str, float]] = None

    @field_validator("item_id")
    @classmethod
    def normalize_item_id(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def check_currency(self) -> "CreateInventoryItemRequest":
        if self.base_price.currency != self.security_deposit.currency:
            raise ValueError("base_price and security_deposit must use the same currency")
        return self


class GetInventoryItemRequest(BaseModel):
    """Request schema for reading an item."""

    item_id: str = Field(..., min_length=1, max_length=64)


class UpdateItemStatusRequest(BaseModel):
    """Request schema for changing an item's operational status."""

    item_id: str = Field(..., min_length=1, max_length=64)
    status: Optional[ItemStatus] = None
    is_active: Optional[bool] = None
    reason: str = Field(..., min_length=1, max_length=255)


class AddBlackoutRequest(BaseModel):
    """Request schema for blocking an item out, e.g. for maintenance."""

    item_id: str = Field(..., min_length=1, max_length=64)
    start_date: datetime
    end_date: datetime
    reason: str = Field("maintenance", min_length=1, max_length=255)

    @model_validator(mode="after")
    def check_dates(self) -> "AddBlackoutRequest":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class BlackoutPeriod(BaseModel):
    id: str
    start_at: datetime
    end_at: datetime
    reason: str


class InventoryItem(BaseModel):
    """Inventory item response schema."""

    item_id: str
    name: str
    item_type: ItemType
    category: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    primary_location: str
    is_active: bool
    status: ItemStatus
    minimum_rental_days: int
    base_price: Money
    security_deposit: Money
    insurance_rate: float
    blackout_periods: List[BlackoutPeriod]
    total_bookings: int
    total_revenue: int
    last_booked_at: Optional[datetime] = None
