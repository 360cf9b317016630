"""FastAPI routers package."""

from .availability import router as availability_router
from .booking import router as booking_router
from .health import router as health_router
from .inventory import router as inventory_router
from .metrics import router as metrics_router
from .scheduler import router as scheduler_router

__all__ = [
    "availability_router",
    "booking_router",
    "health_router",
    "inventory_router",
    "metrics_router",
    "scheduler_router",
]
