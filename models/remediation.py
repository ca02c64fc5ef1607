"""
Remediation schemas.

Covers per-item outcomes of best-effort multi-row writes, the early-harvest
plan, the reallocation preview, the remediation dialog state, and the
request bodies of the remediation routes.
"""

from pydantic import Field
from datetime import date
from typing import Annotated, Literal, Optional, Union
from enum import Enum

from models.base import BaseSchema, LocalDate
from models.daily_task import DailyTask
from models.order_gap import OrderGap, RecipeRequirement, VarietyStatus
from models.order_schedule import OrderSchedule
from models.tray import EligibleTray


# ===================
# OUTCOMES
# ===================

class ItemOutcome(str, Enum):
    OK = "ok"
    ERROR = "error"
    SKIPPED = "skipped"  # not attempted because an earlier item failed


class TrayOutcome(BaseSchema):
    """Result of one write in a best-effort loop."""
    tray_id: int
    outcome: ItemOutcome
    error: Optional[str] = None


class HarvestStepChange(BaseSchema):
    """
    A harvest step moved to today.

    original_date is what a compensating revert writes back.
    """
    tray_step_id: int
    tray_id: int
    original_date: LocalDate = None
    new_date: date


class ReallocationPreview(BaseSchema):
    """
    What "harvest early" would do to one tray.

    next_delivery is the next pending delivery of the same standing order
    that loses this tray's coverage. Advisory only.
    """
    gap: OrderGap
    tray: EligibleTray
    original_harvest_date: LocalDate = None
    next_delivery: Optional[OrderSchedule] = None


class EarlyHarvestPlan(BaseSchema):
    """
    State between opening the early-harvest confirmation and confirming it.

    changes lists only steps that were actually moved, so a cancel reverts
    exactly those.
    """
    farm_uuid: str
    reference_date: date
    gap: Optional[OrderGap] = None
    changes: list[HarvestStepChange] = Field(default_factory=list)
    outcomes: list[TrayOutcome] = Field(default_factory=list)
    tasks: list[DailyTask] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        return all(o.outcome == ItemOutcome.OK for o in self.outcomes)


class BatchHarvestResult(BaseSchema):
    """Per-tray results of recording a harvest."""
    outcomes: list[TrayOutcome] = Field(default_factory=list)
    schedules_completed: int = 0
    schedule_errors: list[str] = Field(default_factory=list)

    @property
    def harvested(self) -> list[int]:
        return [o.tray_id for o in self.outcomes if o.outcome == ItemOutcome.OK]

    @property
    def success(self) -> bool:
        return bool(self.outcomes) and all(o.outcome == ItemOutcome.OK for o in self.outcomes)


# ===================
# DIALOG STATE
# ===================

class NoDialog(BaseSchema):
    kind: Literal["none"] = "none"


class ReallocateDialog(BaseSchema):
    kind: Literal["reallocate"] = "reallocate"
    gap: OrderGap
    tray: EligibleTray
    action: Literal["harvest_early", "keep_for_future", "cancel_delivery"]
    preview: Optional[ReallocationPreview] = None


class AssignDialog(BaseSchema):
    kind: Literal["assign"] = "assign"
    gap: OrderGap
    candidates: list[EligibleTray] = Field(default_factory=list)


class SkipDialog(BaseSchema):
    kind: Literal["skip"] = "skip"
    gap: OrderGap


class EarlyHarvestDialog(BaseSchema):
    kind: Literal["early_harvest"] = "early_harvest"
    plan: EarlyHarvestPlan


class FulfillmentActionDialog(BaseSchema):
    kind: Literal["fulfillment_action"] = "fulfillment_action"
    task: DailyTask
    entry: Optional[VarietyStatus] = None


RemediationDialogState = Annotated[
    Union[
        NoDialog,
        ReallocateDialog,
        AssignDialog,
        SkipDialog,
        EarlyHarvestDialog,
        FulfillmentActionDialog,
    ],
    Field(discriminator="kind"),
]


# ===================
# REQUEST BODIES
# ===================

class AssignTrayRequest(BaseSchema):
    tray_id: int
    customer_id: int
    product_id: Optional[int] = None


class HarvestTodayRequest(BaseSchema):
    tray_step_id: int
    customer_id: Optional[int] = None
    product_id: Optional[int] = None


class ScheduleKeyRequest(BaseSchema):
    """Identifies one order schedule occurrence by its composite key."""
    standing_order_id: Optional[int] = None
    scheduled_delivery_date: Optional[date] = None
    customer_id: Optional[int] = None
    product_id: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=500)


class EarlyHarvestRequest(BaseSchema):
    gap: Optional[OrderGap] = None
    trays: list[EligibleTray] = Field(default_factory=list)
    ready_tasks: list[DailyTask] = Field(default_factory=list)


class ConfirmEarlyHarvestRequest(BaseSchema):
    plan: EarlyHarvestPlan
    selected_tray_ids: list[int] = Field(default_factory=list)


class BreakdownRequest(BaseSchema):
    gap: OrderGap
    mismatched_trays: list[EligibleTray] = Field(default_factory=list)
    ready_trays: list[EligibleTray] = Field(default_factory=list)
    recipe_requirements: Optional[list[RecipeRequirement]] = None


class ReallocationPreviewRequest(BaseSchema):
    gap: OrderGap
    tray: EligibleTray
