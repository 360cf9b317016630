"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict

from sqlalchemy.ext.asyncio import async_sessionmaker

from ..core.config import settings
from ..services.scheduler_service import StatusScheduler
from .base import BaseWorker
from .hold_expiry_worker import HoldExpiryWorker
from .status_scheduler_worker import StatusSchedulerWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """
    Manages background workers for the application.

    Coordinates starting, stopping, and monitoring of all background workers.
    """

    def __init__(self):
        self.workers: Dict[str, BaseWorker] = {}

    def register(self, name: str, worker: BaseWorker) -> None:
        self.workers[name] = worker

    async def start_all(self) -> None:
        """Start all workers."""
        for name, worker in self.workers.items():
            try:
                await worker.start()
            except Exception as e:
                logger.error(f"Failed to start worker {name}: {e!s}", exc_info=True)

        logger.info(f"Started {len(self.workers)} workers")

    async def stop_all(self) -> None:
        """Stop all workers gracefully."""
        results = await asyncio.gather(
            *(worker.stop() for worker in self.workers.values()),
            return_exceptions=True,
        )
        for name, result in zip(self.workers.keys(), results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping worker {name}: {result!s}")

        logger.info("All workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Get a specific worker by name.

        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        """Map of worker name to whether it is running."""
        return {name: worker.running for name, worker in self.workers.items()}


def create_worker_manager(session_factory: async_sessionmaker, scheduler: StatusScheduler) -> WorkerManager:
    """Build the manager with the hold cleanup and status sweep workers."""
    manager = WorkerManager()
    manager.register(
        "hold_expiry",
        HoldExpiryWorker(session_factory, interval_seconds=settings.hold_cleanup_interval_seconds),
    )
    manager.register(
        "status_scheduler",
        StatusSchedulerWorker(scheduler, interval_seconds=settings.scheduler_interval_seconds),
    )
    logger.info(f"Initialized {len(manager.workers)} workers")
    return manager
