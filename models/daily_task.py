"""
Daily task shape.

Tasks come from the daily task list supplier; this backend only consumes
them (and synthesizes harvest tasks for early-harvested trays).
"""

from pydantic import Field
from typing import Optional
from enum import Enum

from config.growing import AT_RISK_MARKER
from models.base import BaseSchema, LocalDate


class TaskSource(str, Enum):
    TRAY_STEP = "tray_step"
    SOAK_REQUEST = "soak_request"
    SEED_REQUEST = "seed_request"
    EXPIRING_SEED = "expiring_seed"
    PLANTING_SCHEDULE = "planting_schedule"
    ORDER_FULFILLMENT = "order_fulfillment"


class DailyTask(BaseSchema):
    """One entry of the daily worklist (Soak / Seed / Water / Harvest … / … At Risk)."""

    id: str
    action: str
    crop: Optional[str] = None
    batch_id: Optional[str] = None
    trays: int = 0
    tray_ids: list[int] = Field(default_factory=list)
    recipe_id: Optional[int] = None
    step_id: Optional[int] = None
    task_source: Optional[TaskSource] = None
    customer_name: Optional[str] = None
    customer_id: Optional[int] = None
    delivery_date: LocalDate = None
    standing_order_id: Optional[int] = None
    order_schedule_id: Optional[int] = None
    trays_needed: Optional[int] = None
    trays_ready: Optional[int] = None
    is_early_harvest: bool = False

    @property
    def is_at_risk(self) -> bool:
        return AT_RISK_MARKER in self.action.lower()
