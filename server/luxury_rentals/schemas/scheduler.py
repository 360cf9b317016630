"""Scheduler sweep Pydantic schemas."""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class StatusUpdateCounts(BaseModel):
    processed: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)


class ReminderCounts(BaseModel):
    sent: int = 0
    failed: int = 0


class CleanupCounts(BaseModel):
    expired_reservations: int = 0


class SweepSummary(BaseModel):
    """What one automatic status sweep did."""

    status_updates: StatusUpdateCounts = Field(default_factory=StatusUpdateCounts)
    reminders: ReminderCounts = Field(default_factory=ReminderCounts)
    cleanup: CleanupCounts = Field(default_factory=CleanupCounts)
    skipped: bool = Field(False, description="True when another sweep was already running")
    timestamp: datetime
