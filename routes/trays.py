"""
Tray API routes.
"""

from fastapi import APIRouter, Header
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.tray import MarkTraysLostRequest
from services.session_service import get_session_service
from services.tray_service import TrayService, get_tray_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/trays", tags=["Trays"])


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


@router.get("/loss-reasons")
async def list_loss_reasons():
    """Catalogue of reasons a tray can be marked lost."""
    return TrayService.loss_reasons()


@router.get("/active-count")
async def count_active_trays(x_farm_uuid: Optional[str] = Header(None)):
    """Number of active, unharvested trays."""
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        return {"count": get_tray_service().count_active(farm_uuid)}

    except Exception as e:
        return handle_error(e)


@router.post("/lost")
async def mark_trays_lost(data: MarkTraysLostRequest, x_farm_uuid: Optional[str] = Header(None)):
    """
    Mark trays lost.

    Raises:
        422: Unknown loss reason
    """
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        updated = get_tray_service().mark_trays_as_lost(
            farm_uuid, data.tray_ids, data.reason, data.notes
        )
        return {"updated": updated}

    except Exception as e:
        return handle_error(e)
