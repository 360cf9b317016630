"""Background worker running the automatic booking status sweep."""

import logging

from ..services.scheduler_service import StatusScheduler
from .base import BaseWorker

logger = logging.getLogger(__name__)


class StatusSchedulerWorker(BaseWorker):
    """Runs the status sweep on a fixed interval (every 15 minutes by default)."""

    def __init__(self, scheduler: StatusScheduler, interval_seconds: float = 900):
        super().__init__(name="StatusScheduler", interval_seconds=interval_seconds)
        self.scheduler = scheduler

    async def process(self) -> None:
        summary = await self.scheduler.run_sweep()
        if summary.skipped:
            logger.info("Status sweep skipped; another sweep is running", extra={"worker": self.name})
            return

        logger.info(
            "Status sweep finished",
            extra={
                "worker": self.name,
                "processed": summary.status_updates.processed,
                "failed": summary.status_updates.failed,
                "reminders_sent": summary.reminders.sent,
                "expired_reservations": summary.cleanup.expired_reservations,
            }
        )
