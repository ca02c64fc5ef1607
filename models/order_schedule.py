"""
Order schedule schemas.

An order schedule row is one dated occurrence of a standing order, keyed by
(standing_order_id, scheduled_delivery_date).
"""

from pydantic import Field
from typing import Optional
from enum import Enum

from models.base import BaseSchema, Count, LocalDate


class ScheduleStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class OrderSchedule(BaseSchema):
    """Concrete delivery occurrence."""

    schedule_id: Optional[int] = None
    farm_uuid: Optional[str] = None
    standing_order_id: int
    scheduled_delivery_date: LocalDate = None
    status: ScheduleStatus = ScheduleStatus.PENDING
    notes: Optional[str] = None


class FinalizeDayResult(BaseSchema):
    """Counts returned by the end-of-day sweep."""
    completed: Count = Field(0, ge=0)
    skipped: Count = Field(0, ge=0)
