"""
Soaked seed API routes.

Blocking domain errors (not enough seed, expired lot) come back as 409 with
"blocking": true in the error body.
"""

from fastapi import APIRouter, Header
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.soaked_seed import (
    DiscardSoakedSeedRequest,
    SoakedSeed,
    UseSoakedSeedRequest,
)
from services.session_service import get_session_service
from services.soaked_seed_service import get_soaked_seed_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/soaked-seeds", tags=["Soaked Seeds"])


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


@router.get("", response_model=list[SoakedSeed])
async def list_available_soaked_seed(x_farm_uuid: Optional[str] = Header(None)):
    """Unexpired lots with seed left."""
    try:
        farm_uuid = get_session_service().resolve_farm_uuid(x_farm_uuid)
        return get_soaked_seed_service().list_available(farm_uuid)

    except Exception as e:
        return handle_error(e)


@router.post("/{soaked_seed_id}/use")
async def use_soaked_seed(
    soaked_seed_id: int,
    data: UseSoakedSeedRequest,
    x_farm_uuid: Optional[str] = Header(None),
):
    """
    Create trays from a leftover lot.

    Raises:
        404: Lot not found
        409: Not enough seed, or the lot expired (blocking)
        422: quantity_trays not positive
    """
    try:
        sessions = get_session_service()
        farm_uuid = sessions.resolve_farm_uuid(x_farm_uuid)
        created = get_soaked_seed_service().use_leftover_soaked_seed(
            farm_uuid,
            soaked_seed_id,
            data.quantity_trays,
            request_id=data.request_id,
            user_id=sessions.load().user_id,
        )
        return {"trays_created": created}

    except Exception as e:
        return handle_error(e)


@router.post("/{soaked_seed_id}/discard")
async def discard_soaked_seed(
    soaked_seed_id: int,
    data: DiscardSoakedSeedRequest,
    x_farm_uuid: Optional[str] = Header(None),
):
    """
    Discard a leftover lot.

    Raises:
        404: Lot not found
    """
    try:
        sessions = get_session_service()
        farm_uuid = sessions.resolve_farm_uuid(x_farm_uuid)
        discarded = get_soaked_seed_service().discard_soaked_seed(
            farm_uuid,
            soaked_seed_id,
            data.reason,
            user_id=sessions.load().user_id,
        )
        return {"success": discarded}

    except Exception as e:
        return handle_error(e)
