"""
Order gap schemas.

An order gap is derived, never persisted: it is recomputed on every load
from live tray and schedule state.
"""

from pydantic import Field
from datetime import date
from typing import Optional
from enum import Enum

from models.base import BaseSchema, Count, LocalDate
from models.tray import EligibleTray


class FulfillmentStatus(str, Enum):
    """Per-recipe fulfillment state recorded by the database."""
    FULFILLED = "fulfilled"
    PARTIAL = "partial"
    NO_TRAYS = "no_trays"


class VarietyState(str, Enum):
    """Breakdown status of one required variety."""
    DATE_MISMATCH = "date_mismatch"
    MISSING = "missing"
    READY = "ready"


# Display order: actionable problems first.
VARIETY_STATE_PRECEDENCE = {
    VarietyState.DATE_MISMATCH: 0,
    VarietyState.MISSING: 1,
    VarietyState.READY: 2,
}


class RemediationOption(str, Enum):
    """Remediation buttons a breakdown entry can offer."""
    ASSIGN_TRAY = "assign_tray"
    HARVEST_EARLY = "harvest_early"
    KEEP_FOR_FUTURE = "keep_for_future"
    CANCEL_DELIVERY = "cancel_delivery"
    SUBSTITUTE = "substitute"
    SKIP_DELIVERY = "skip_delivery"


class OrderGap(BaseSchema):
    """One row of the order_gap_status summary: (customer, product, delivery date)."""

    farm_uuid: Optional[str] = None
    customer_id: int
    customer_name: Optional[str] = None
    product_id: int
    product_name: Optional[str] = None
    standing_order_id: Optional[int] = None
    scheduled_delivery_date: LocalDate = None
    delivery_date: LocalDate = None
    is_mix: bool = False

    trays_needed: Count = 0
    trays_ready: Count = 0
    gap: Count = 0
    near_ready_assigned: Count = 0
    unassigned_ready: Count = 0
    unassigned_near_ready: Count = 0
    varieties_in_product: Count = 0
    varieties_missing: Count = 0
    missing_varieties: Optional[str] = Field(
        None,
        description="Comma-joined names of varieties with no tray at all"
    )
    soonest_ready_date: LocalDate = None

    @property
    def is_active(self) -> bool:
        """Only a positive shortfall is shown."""
        return self.gap > 0

    @property
    def effective_delivery_date(self) -> Optional[date]:
        return self.scheduled_delivery_date or self.delivery_date

    @property
    def resolution_key(self) -> tuple[int, int]:
        return (self.customer_id, self.product_id)


class RecipeRequirement(BaseSchema):
    """
    One required recipe of a delivery (order_fulfillment_status row).

    fulfillment_status is authoritative: a fulfilled row wins over whatever
    tray matching would infer.
    """

    farm_uuid: Optional[str] = None
    delivery_date: LocalDate = None
    customer_name: Optional[str] = None
    standing_order_id: Optional[int] = None
    recipe_id: int
    recipe_name: Optional[str] = None
    trays_needed: Count = 0
    trays_ready: Count = 0
    fulfillment_status: Optional[FulfillmentStatus] = None

    @property
    def is_fulfilled(self) -> bool:
        return self.fulfillment_status == FulfillmentStatus.FULFILLED


class VarietyStatus(BaseSchema):
    """Coverage of one variety within a gap."""

    variety_name: str
    recipe_id: Optional[int] = None
    status: VarietyState
    tray: Optional[EligibleTray] = None
    ready_date: LocalDate = None
    options: list[RemediationOption] = Field(default_factory=list)


class GapReconciliation(BaseSchema):
    """A gap with the trays and per-variety breakdown behind it."""

    gap: OrderGap
    recipe_ids: list[int] = Field(default_factory=list)
    ready_trays: list[EligibleTray] = Field(default_factory=list)
    mismatched_trays: list[EligibleTray] = Field(default_factory=list)
    unassigned_trays: list[EligibleTray] = Field(default_factory=list)
    requirements: list[RecipeRequirement] = Field(default_factory=list)
    breakdown: list[VarietyStatus] = Field(default_factory=list)
    options: list[RemediationOption] = Field(default_factory=list)


class GapListResponse(BaseSchema):
    """Reconciled gaps for a farm."""
    data: list[GapReconciliation]
    total: int
    suppressed: int = 0
    query_count: int = 0
