"""
Remediation API routes.

Each endpoint performs one remediation write. Successful writes that settle
a gap mark it recently resolved so the next reload does not show it again
before the summary view catches up.
"""

from fastapi import APIRouter, Header
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.order_schedule import FinalizeDayResult, OrderSchedule
from models.remediation import (
    AssignTrayRequest,
    BatchHarvestResult,
    ConfirmEarlyHarvestRequest,
    EarlyHarvestPlan,
    EarlyHarvestRequest,
    HarvestStepChange,
    HarvestTodayRequest,
    ReallocationPreview,
    ReallocationPreviewRequest,
    ScheduleKeyRequest,
    TrayOutcome,
)
from routes.order_gaps import resolved_gaps_for
from services.remediation_service import get_remediation_service
from services.session_service import get_session_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/remediation", tags=["Remediation"])


# ===================
# EXCEPTION HANDLER
# ===================

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


def _mark_resolved(farm_uuid: str, customer_id: Optional[int], product_id: Optional[int]) -> None:
    if customer_id is not None and product_id is not None:
        resolved_gaps_for(farm_uuid).mark(customer_id, product_id)


# ===================
# TRAYS
# ===================

@router.post("/assign-tray")
async def assign_tray(data: AssignTrayRequest, x_farm_uuid: Optional[str] = Header(None)):
    """
    Assign an unassigned tray to the gap's customer.

    Raises:
        404: Tray not found in this farm
    """
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        get_remediation_service().assign_tray(farm_uuid, data.tray_id, data.customer_id)
        _mark_resolved(farm_uuid, data.customer_id, data.product_id)
        return {"success": True}

    except Exception as e:
        return handle_error(e)


@router.post("/reallocation-preview", response_model=ReallocationPreview)
async def preview_reallocation(data: ReallocationPreviewRequest, x_farm_uuid: Optional[str] = Header(None)):
    """Show which future delivery loses coverage if the tray is harvested early."""
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        return get_remediation_service().open_reallocation_confirm(farm_uuid, data.gap, data.tray)

    except Exception as e:
        return handle_error(e)


@router.post("/harvest-today", response_model=HarvestStepChange)
async def harvest_today(data: HarvestTodayRequest, x_farm_uuid: Optional[str] = Header(None)):
    """
    Move a tray's pending harvest step to today.

    The response carries the original date for a later revert.
    """
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        change = get_remediation_service().harvest_today(farm_uuid, data.tray_step_id)
        _mark_resolved(farm_uuid, data.customer_id, data.product_id)
        return change

    except Exception as e:
        return handle_error(e)


@router.post("/harvest-step/revert")
async def revert_harvest_step(data: HarvestStepChange, x_farm_uuid: Optional[str] = Header(None)):
    """
    Put a moved harvest step back on its original date.

    Raises:
        404: Step not pending or not in this farm
    """
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        return {"success": get_remediation_service().revert_harvest_step(farm_uuid, data)}

    except Exception as e:
        return handle_error(e)


# ===================
# ORDER SCHEDULES
# ===================

@router.post("/keep-for-future", response_model=OrderSchedule)
async def keep_for_future(data: ScheduleKeyRequest, x_farm_uuid: Optional[str] = Header(None)):
    """
    Skip this delivery; the late tray serves a later one.

    Raises:
        422: standing_order_id or scheduled_delivery_date missing
    """
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        schedule = get_remediation_service().keep_for_future(
            farm_uuid, data.standing_order_id, data.scheduled_delivery_date, data.notes
        )
        _mark_resolved(farm_uuid, data.customer_id, data.product_id)
        return schedule

    except Exception as e:
        return handle_error(e)


@router.post("/cancel-delivery", response_model=OrderSchedule)
async def cancel_delivery(data: ScheduleKeyRequest, x_farm_uuid: Optional[str] = Header(None)):
    """
    Cancel this delivery.

    Raises:
        422: standing_order_id or scheduled_delivery_date missing
    """
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        schedule = get_remediation_service().cancel_delivery(
            farm_uuid, data.standing_order_id, data.scheduled_delivery_date, data.notes
        )
        _mark_resolved(farm_uuid, data.customer_id, data.product_id)
        return schedule

    except Exception as e:
        return handle_error(e)


@router.post("/skip-delivery", response_model=OrderSchedule)
async def skip_delivery(data: ScheduleKeyRequest, x_farm_uuid: Optional[str] = Header(None)):
    """Skip a delivery that has no candidate tray."""
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        schedule = get_remediation_service().skip_delivery(
            farm_uuid, data.standing_order_id, data.scheduled_delivery_date, data.notes
        )
        _mark_resolved(farm_uuid, data.customer_id, data.product_id)
        return schedule

    except Exception as e:
        return handle_error(e)


@router.post("/finalize-day", response_model=FinalizeDayResult)
async def finalize_day(x_farm_uuid: Optional[str] = Header(None)):
    """End-of-day sweep of today's pending deliveries."""
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        return get_remediation_service().finalize_day(farm_uuid)

    except Exception as e:
        return handle_error(e)


# ===================
# EARLY HARVEST
# ===================

@router.post("/early-harvest", response_model=EarlyHarvestPlan)
async def open_early_harvest(data: EarlyHarvestRequest, x_farm_uuid: Optional[str] = Header(None)):
    """
    Advance the given trays to harvest today and return the confirmation
    list. Per-tray outcomes show which steps moved.
    """
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        return get_remediation_service().open_early_harvest_confirm(
            farm_uuid,
            data.trays,
            gap=data.gap,
            ready_tasks=data.ready_tasks,
        )

    except Exception as e:
        return handle_error(e)


@router.post("/early-harvest/cancel", response_model=list[TrayOutcome])
async def cancel_early_harvest(plan: EarlyHarvestPlan, x_farm_uuid: Optional[str] = Header(None)):
    """Revert the steps an early-harvest plan moved."""
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        return get_remediation_service().cancel_early_harvest(farm_uuid, plan)

    except Exception as e:
        return handle_error(e)


@router.post("/early-harvest/confirm", response_model=BatchHarvestResult)
async def confirm_early_harvest(data: ConfirmEarlyHarvestRequest, x_farm_uuid: Optional[str] = Header(None)):
    """
    Record the harvest of the selected trays.

    The farm comes from the request scope; the plan's farm_uuid is ignored.

    Raises:
        422: No trays selected
    """
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        plan = data.plan.model_copy(update={"farm_uuid": farm_uuid})
        result = get_remediation_service().handle_confirm_early_harvest(
            farm_uuid, plan, data.selected_tray_ids
        )
        gap = plan.gap
        if result.harvested and gap is not None:
            _mark_resolved(farm_uuid, gap.customer_id, gap.product_id)
        return result

    except Exception as e:
        return handle_error(e)
