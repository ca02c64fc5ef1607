"""
Fulfillment action API routes.
"""

from fastapi import APIRouter, Header, Query
from fastapi.responses import JSONResponse
from datetime import date
from typing import Optional
import structlog

from models.fulfillment_action import (
    FulfillmentAction,
    FulfillmentActionCreate,
    RecordActionResponse,
)
from services.fulfillment_action_service import get_fulfillment_action_service
from services.session_service import get_session_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/fulfillment-actions", tags=["Fulfillment Actions"])


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


@router.post("", response_model=RecordActionResponse, status_code=201)
async def record_fulfillment_action(
    data: FulfillmentActionCreate,
    x_farm_uuid: Optional[str] = Header(None),
):
    """
    Record a decision on an at-risk order item.

    Raises:
        422: Substitute without a recipe, partial without a quantity
    """
    try:
        sessions = get_session_service()
        farm_uuid = sessions.resolve_farm_uuid(x_farm_uuid)
        user_id = sessions.load().user_id
        return get_fulfillment_action_service().record_fulfillment_action(
            farm_uuid, data, user_id=user_id
        )

    except Exception as e:
        return handle_error(e)


@router.get("/item", response_model=Optional[FulfillmentAction])
async def get_item_action(
    delivery_date: date = Query(..., description="Delivery date"),
    recipe_id: int = Query(..., description="Recipe of the order item"),
    x_farm_uuid: Optional[str] = Header(None),
):
    """Latest decision for a recipe on a delivery date (null if none)."""
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        return get_fulfillment_action_service().get_item_action(farm_uuid, delivery_date, recipe_id)

    except Exception as e:
        return handle_error(e)
