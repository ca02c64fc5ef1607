"""
Fulfillment actions — operator decisions on at-risk order items.

The record_fulfillment_action database function writes the audit row and,
for resolving actions (skip, substitute, partial), the matching
order_schedules row in one call.
"""

from datetime import date
from typing import Optional
import structlog

from config import get_supabase_client
from exceptions import DatabaseError, MissingFarmScopeError
from models.daily_task import DailyTask
from models.fulfillment_action import (
    FulfillmentAction,
    FulfillmentActionCreate,
    RecordActionResponse,
)
from utils.record_adapter import normalize_rows

logger = structlog.get_logger(__name__)


def requires_fulfillment_action(task: DailyTask) -> bool:
    """
    At-risk tasks go through a fulfillment decision instead of being
    completed directly.
    """
    return task.is_at_risk


class FulfillmentActionService:
    """Records and reads order fulfillment decisions."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "order_fulfillment_actions"

    def record_fulfillment_action(
        self,
        farm_uuid: str,
        action: FulfillmentActionCreate,
        user_id: Optional[str] = None,
    ) -> RecordActionResponse:
        """
        Record a decision for one (standing order, delivery date, recipe).

        Args:
            farm_uuid: Farm scope
            action: Validated decision
            user_id: Acting user

        Returns:
            RecordActionResponse (resolved=True when the schedule changed)

        Raises:
            MissingFarmScopeError: If farm_uuid is empty
            DatabaseError: If the RPC fails
        """
        if not farm_uuid:
            raise MissingFarmScopeError()

        params = {
            "p_farm_uuid": farm_uuid,
            "p_standing_order_id": action.standing_order_id,
            "p_delivery_date": action.delivery_date.isoformat(),
            "p_recipe_id": action.recipe_id,
            "p_action_type": action.action_type.value,
            "p_notes": action.notes,
            "p_original_quantity": action.original_quantity,
            "p_fulfilled_quantity": action.fulfilled_quantity,
            "p_substitute_recipe_id": action.substitute_recipe_id,
            "p_created_by": user_id,
        }

        try:
            result = self.db.rpc("record_fulfillment_action", params).execute()
        except Exception as e:
            logger.error(
                "record_fulfillment_action_failed",
                standing_order_id=action.standing_order_id,
                action_type=action.action_type.value,
                error=str(e),
            )
            raise DatabaseError("rpc", str(e))

        data = result.data
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            raise DatabaseError("rpc", "record_fulfillment_action returned no result")

        response = RecordActionResponse(**data)
        logger.info(
            "fulfillment_action_recorded",
            action_id=response.action_id,
            action_type=action.action_type.value,
            resolved=response.resolved,
        )
        return response

    def get_item_action(
        self,
        farm_uuid: str,
        delivery_date: date,
        recipe_id: int,
    ) -> Optional[FulfillmentAction]:
        """Latest decision recorded for a recipe on a delivery date, if any."""
        try:
            result = self.db.table(self.table).select("*").eq(
                "farm_uuid", farm_uuid
            ).eq(
                "delivery_date", delivery_date.isoformat()
            ).eq(
                "recipe_id", recipe_id
            ).order("created_at", desc=True).limit(1).execute()
        except Exception as e:
            logger.error("get_item_action_failed", recipe_id=recipe_id, error=str(e))
            raise DatabaseError("select", str(e))

        rows = normalize_rows(result.data, id_field="action_id")
        return FulfillmentAction(**rows[0]) if rows else None


# Singleton instance
_fulfillment_action_service: Optional[FulfillmentActionService] = None


def get_fulfillment_action_service() -> FulfillmentActionService:
    """Get the singleton fulfillment action service instance."""
    global _fulfillment_action_service
    if _fulfillment_action_service is None:
        _fulfillment_action_service = FulfillmentActionService()
    return _fulfillment_action_service
