"""
Tray, recipe and tray-step schemas, plus the enriched eligibility views.
"""

from pydantic import Field, model_validator
from typing import Any, Optional
from enum import Enum

from config.growing import HARVEST_STEP_KEYWORD, UNKNOWN_VARIETY
from models.base import BaseSchema, LocalDate
from utils.record_adapter import resolve_variety_name_from_relation


class TrayStatus(str, Enum):
    """Tray lifecycle."""
    ACTIVE = "active"
    HARVESTED = "harvested"
    LOST = "lost"


class StepStatus(str, Enum):
    """Tray step status. Only Pending steps are actionable."""
    PENDING = "Pending"
    COMPLETED = "Completed"


# ===================
# RECIPE SCHEMAS
# ===================

class Recipe(BaseSchema):
    """Growing instructions for one variety."""

    recipe_id: int
    recipe_name: Optional[str] = None
    variety_name: Optional[str] = None
    varieties: Optional[Any] = Field(
        None,
        description="Embedded variety relation (object or list of objects)"
    )
    total_days: Optional[int] = Field(None, ge=0)

    @property
    def display_name(self) -> str:
        """
        Name shown for trays of this recipe.

        Own variety_name, else the linked variety's name, else the recipe
        name, else a placeholder.
        """
        return (
            self.variety_name
            or resolve_variety_name_from_relation(self.varieties)
            or self.recipe_name
            or UNKNOWN_VARIETY
        )


class ProductRecipe(BaseSchema):
    """One row of the product → recipe mapping (mixes have several)."""
    product_id: int
    recipe_id: int


# ===================
# TRAY SCHEMAS
# ===================

class Tray(BaseSchema):
    """
    Physical growing unit.

    customer_id is a weak reference; None means the tray is in the shared pool.
    """

    tray_id: int
    farm_uuid: Optional[str] = None
    recipe_id: Optional[int] = None
    sow_date: LocalDate = None
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    status: TrayStatus = TrayStatus.ACTIVE
    harvest_date: LocalDate = None

    @property
    def is_growing(self) -> bool:
        """Active and not yet harvested."""
        return self.status == TrayStatus.ACTIVE and self.harvest_date is None

    @model_validator(mode='after')
    def validate_lifecycle(self):
        """Active trays have no harvest_date; harvested trays have one."""
        if self.status == TrayStatus.ACTIVE and self.harvest_date is not None:
            raise ValueError("Active tray cannot have a harvest date")
        if self.status == TrayStatus.HARVESTED and self.harvest_date is None:
            raise ValueError("Harvested tray must have a harvest date")
        return self


class TrayStep(BaseSchema):
    """Scheduled phase transition for a tray."""

    tray_step_id: int
    tray_id: int
    step_name: Optional[str] = None
    scheduled_date: LocalDate = None
    status: StepStatus = StepStatus.PENDING

    @property
    def is_pending_harvest(self) -> bool:
        return (
            self.status == StepStatus.PENDING
            and HARVEST_STEP_KEYWORD in (self.step_name or "").lower()
        )


class HarvestStepRef(BaseSchema):
    """Pending harvest step of one tray, as used by lookups."""
    tray_step_id: int
    scheduled_date: LocalDate = None


# ===================
# ELIGIBILITY VIEWS
# ===================

class EligibleTray(BaseSchema):
    """
    Tray enriched for display and remediation.

    scheduled_harvest_date comes from the pending harvest step, not from
    harvest_date (which stays empty until the tray is actually harvested).
    """

    tray_id: int
    recipe_id: Optional[int] = None
    recipe_name: Optional[str] = None
    variety_name: str = UNKNOWN_VARIETY
    customer_id: Optional[int] = None
    sow_date: LocalDate = None
    tray_step_id: Optional[int] = None
    scheduled_harvest_date: LocalDate = None
    cycle_days: int
    days_grown: Optional[int] = None
    days_until_ready: Optional[int] = None

    @property
    def is_unassigned(self) -> bool:
        return self.customer_id is None


class EligibleTrays(BaseSchema):
    """Partition of candidate trays for one product/customer."""

    ready: list[EligibleTray] = Field(
        default_factory=list,
        description="Unassigned trays inside the ready window"
    )
    mismatched: list[EligibleTray] = Field(
        default_factory=list,
        description="Customer trays scheduled to harvest after today"
    )
    ready_for_customer: list[EligibleTray] = Field(
        default_factory=list,
        description="Customer trays scheduled to harvest today or earlier"
    )


class MarkTraysLostRequest(BaseSchema):
    """Mark trays lost with a catalogued reason."""
    tray_ids: list[int] = Field(..., min_length=1)
    reason: str
    notes: Optional[str] = Field(None, max_length=500)
