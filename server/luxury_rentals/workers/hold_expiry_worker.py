"""Background worker removing expired temporary holds."""

import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from ..core.timeutils import Clock, utcnow
from ..services.availability_service import AvailabilityService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class HoldExpiryWorker(BaseWorker):
    """
    Deletes temporary holds past their expiry.

    Expired holds already stop blocking availability checks; this keeps the
    table small and the calendar projection clean between scheduler sweeps.
    """

    def __init__(self, session_factory: async_sessionmaker, interval_seconds: float = 60, clock: Clock = utcnow):
        super().__init__(name="HoldExpiry", interval_seconds=interval_seconds)
        self.session_factory = session_factory
        self.clock = clock

    async def process(self) -> None:
        async with self.session_factory() as db:
            service = AvailabilityService(db, self.clock)
            removed = await service.cleanup_expired_reservations()

        if removed:
            logger.info(
                f"Removed {removed} expired holds",
                extra={"expired_count": removed, "worker": self.name}
            )
