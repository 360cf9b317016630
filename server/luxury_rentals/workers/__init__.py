"""Background workers for hold cleanup and automatic status changes."""

from .hold_expiry_worker import HoldExpiryWorker
from .manager import WorkerManager, create_worker_manager
from .status_scheduler_worker import StatusSchedulerWorker

__all__ = ["HoldExpiryWorker", "StatusSchedulerWorker", "WorkerManager", "create_worker_manager"]
