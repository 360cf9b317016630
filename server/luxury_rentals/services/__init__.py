"""Service layer package."""

from .availability_service import AvailabilityService
from .booking_service import BookingService
from .inventory_service import InventoryService
from .scheduler_service import StatusScheduler
from .status_actions import ActionDispatcher
from .status_service import BookingStatusService

__all__ = [
    "ActionDispatcher",
    "AvailabilityService",
    "BookingService",
    "BookingStatusService",
    "InventoryService",
    "StatusScheduler",
]
