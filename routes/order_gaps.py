"""
Order gap API routes.

Reconciled gaps, eligible trays and per-variety breakdowns. The farm comes
from the X-Farm-UUID header, falling back to the persisted session.
"""

from fastapi import APIRouter, Header, Query
from fastapi.responses import JSONResponse
from datetime import date
from typing import Optional
import structlog

from models.order_gap import GapListResponse, VarietyStatus
from models.remediation import BreakdownRequest
from models.tray import EligibleTrays
from services.gap_service import RecentlyResolvedGaps, get_gap_service
from services.session_service import get_session_service
from services.tray_eligibility_service import get_tray_eligibility_service
from services.variety_breakdown_service import compute_gap_breakdown
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/order-gaps", tags=["Order Gaps"])

# Recently-resolved sets, one per farm session
_resolved_gaps: dict[str, RecentlyResolvedGaps] = {}


def resolved_gaps_for(farm_uuid: str) -> RecentlyResolvedGaps:
    if farm_uuid not in _resolved_gaps:
        _resolved_gaps[farm_uuid] = RecentlyResolvedGaps()
    return _resolved_gaps[farm_uuid]


def reset_resolved_gaps() -> None:
    _resolved_gaps.clear()


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


# ===================
# ROUTES
# ===================

@router.get("", response_model=GapListResponse)
async def list_order_gaps(
    reference_date: Optional[date] = Query(None, description="Treat this date as today"),
    x_farm_uuid: Optional[str] = Header(None),
):
    """
    Active order gaps with eligible trays, breakdown and remediation options.

    Gaps resolved in the last few seconds are left out and counted in
    `suppressed`.
    """
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        return get_gap_service().reconcile(
            farm_uuid,
            reference_date=reference_date,
            resolved=resolved_gaps_for(farm_uuid),
        )

    except Exception as e:
        return handle_error(e)


@router.get("/eligible-trays", response_model=EligibleTrays)
async def get_eligible_trays(
    product_id: Optional[int] = Query(None, description="Target product"),
    recipe_ids: Optional[list[int]] = Query(None, description="Target recipes when no product is given"),
    customer_id: Optional[int] = Query(None, description="Customer whose trays are classified"),
    reference_date: Optional[date] = Query(None, description="Treat this date as today"),
    x_farm_uuid: Optional[str] = Header(None),
):
    """
    Ready, ready-for-customer and mismatched trays for a product.

    Raises:
        422: Neither product_id nor recipe_ids given
    """
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        return get_tray_eligibility_service().resolve_eligible_trays(
            farm_uuid,
            product_id=product_id,
            recipe_ids=recipe_ids,
            reference_date=reference_date,
            customer_id=customer_id,
        )

    except Exception as e:
        return handle_error(e)


@router.post("/breakdown", response_model=list[VarietyStatus])
async def build_breakdown(data: BreakdownRequest):
    """Per-variety breakdown of one gap from already-loaded trays."""
    try:
        return compute_gap_breakdown(
            data.gap,
            data.mismatched_trays,
            data.ready_trays,
            data.recipe_requirements,
        )

    except Exception as e:
        return handle_error(e)
