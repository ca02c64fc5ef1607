"""
Fulfillment action schemas.

One persisted row per operator decision on an at-risk order item.
"""

from pydantic import Field, model_validator
from datetime import date
from typing import Optional
from enum import Enum

from models.base import BaseSchema, LocalDate, TimestampMixin


class FulfillmentActionType(str, Enum):
    """
    Operator decision.

    skip maps to a skipped order schedule, substitute to a substituted one;
    contacted and note only leave an audit trail.
    """
    CONTACTED = "contacted"
    SKIP = "skip"
    SUBSTITUTE = "substitute"
    NOTE = "note"
    PARTIAL = "partial"


RESOLVING_ACTIONS = frozenset({
    FulfillmentActionType.SKIP,
    FulfillmentActionType.SUBSTITUTE,
    FulfillmentActionType.PARTIAL,
})


class FulfillmentActionCreate(BaseSchema):
    """Record a decision for one (standing order, delivery date, recipe)."""

    standing_order_id: int
    delivery_date: date
    recipe_id: int
    action_type: FulfillmentActionType
    notes: Optional[str] = Field(None, max_length=1000)
    original_quantity: Optional[int] = Field(None, ge=0)
    fulfilled_quantity: Optional[int] = None
    substitute_recipe_id: Optional[int] = None

    @model_validator(mode="after")
    def check_action_fields(self):
        """Substitutes need a recipe; partials need a positive quantity."""
        if self.action_type == FulfillmentActionType.SUBSTITUTE and self.substitute_recipe_id is None:
            raise ValueError("substitute_recipe_id is required for a substitute action")
        if self.action_type == FulfillmentActionType.PARTIAL:
            if self.fulfilled_quantity is None or self.fulfilled_quantity <= 0:
                raise ValueError("fulfilled_quantity must be greater than zero for a partial action")
        return self


class FulfillmentAction(BaseSchema, TimestampMixin):
    """Persisted audit row."""

    action_id: int
    farm_uuid: Optional[str] = None
    standing_order_id: Optional[int] = None
    delivery_date: LocalDate = None
    recipe_id: int
    action_type: FulfillmentActionType
    action_reason: Optional[str] = None
    original_quantity: Optional[int] = None
    fulfilled_quantity: Optional[int] = None
    substitute_recipe_id: Optional[int] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None


class RecordActionResponse(BaseSchema):
    """Result of the record_fulfillment_action RPC."""
    success: bool
    action_id: int
    schedule_id: Optional[int] = None
    resolved: bool = False
