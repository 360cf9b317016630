"""Models module exporting all database models."""

from .booking import Booking, BookingModification, BookingStatus, PaymentStatus
from .customer import Customer, CustomerTier, StaffMember, StaffRole
from .inventory import BlackoutPeriod, InventoryItem, ItemStatus, ItemType

__all__ = [
    # Inventory entities
    "InventoryItem",
    "BlackoutPeriod",
    "ItemType",
    "ItemStatus",

    # Booking entities
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "BookingModification",

    # People
    "Customer",
    "CustomerTier",
    "StaffMember",
    "StaffRole",
]
