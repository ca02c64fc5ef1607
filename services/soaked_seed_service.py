"""
Soaked seed service — leftover soak inventory.

Seed soaked for a seeding request that did not use all of it can be turned
into ad-hoc trays or discarded. Both go through database functions; this
service validates inputs first and turns the domain failures into blocking
errors.
"""

from datetime import date
from typing import Optional
import structlog

from config import get_supabase_client
from exceptions import (
    DatabaseError,
    InsufficientSeedError,
    InvalidQuantityError,
    MissingFarmScopeError,
    SoakedSeedExpiredError,
    SoakedSeedNotFoundError,
)
from models.soaked_seed import SoakedSeed
from services.activity_service import get_activity_service
from utils.record_adapter import normalize_rows

logger = structlog.get_logger(__name__)

# Fragments of the database function's error text for a short lot
_INSUFFICIENT_MARKERS = ("insufficient", "not enough")


class SoakedSeedService:
    """Soaked seed lots of a farm."""

    def __init__(self):
        self.db = get_supabase_client()
        self.activity = get_activity_service()
        self.table = "soaked_seeds"

    def get_soaked_seed(self, farm_uuid: str, soaked_seed_id: int) -> SoakedSeed:
        """
        Get a lot of this farm by id.

        Raises:
            SoakedSeedNotFoundError: If the lot doesn't exist in this farm
        """
        try:
            result = self.db.table(self.table).select(
                "soaked_seed_id, farm_uuid, variety_name, quantity_remaining, unit, "
                "soak_date, expires_at, request_id, status"
            ).eq(
                "soaked_seed_id", soaked_seed_id
            ).eq(
                "farm_uuid", farm_uuid
            ).limit(1).execute()
        except Exception as e:
            logger.error("get_soaked_seed_failed", soaked_seed_id=soaked_seed_id, error=str(e))
            raise DatabaseError("select", str(e))

        rows = normalize_rows(result.data, id_field="soaked_seed_id")
        if not rows:
            raise SoakedSeedNotFoundError(soaked_seed_id)
        return SoakedSeed(**rows[0])

    def list_available(self, farm_uuid: str, today: Optional[date] = None) -> list[SoakedSeed]:
        """Lots with seed left that have not expired, soonest expiry first."""
        today = today or date.today()

        try:
            result = self.db.table(self.table).select("*").eq(
                "farm_uuid", farm_uuid
            ).gt(
                "quantity_remaining", 0
            ).order("expires_at", desc=False).execute()
        except Exception as e:
            logger.error("list_soaked_seed_failed", farm_uuid=farm_uuid, error=str(e))
            raise DatabaseError("select", str(e))

        lots = [SoakedSeed(**row) for row in normalize_rows(result.data, id_field="soaked_seed_id")]
        return [lot for lot in lots if not lot.is_expired(today)]

    def use_leftover_soaked_seed(
        self,
        farm_uuid: str,
        soaked_seed_id: int,
        quantity_trays: int,
        request_id: Optional[int] = None,
        user_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> int:
        """
        Create trays from a leftover lot.

        Returns:
            Number of trays created

        Raises:
            InvalidQuantityError: quantity_trays is not positive
            SoakedSeedExpiredError: The lot is past its expiry (blocking)
            InsufficientSeedError: The lot cannot cover the trays (blocking)
        """
        if not farm_uuid:
            raise MissingFarmScopeError()
        if quantity_trays is None or quantity_trays <= 0:
            raise InvalidQuantityError("quantity_trays", quantity_trays)

        today = today or date.today()
        lot = self.get_soaked_seed(farm_uuid, soaked_seed_id)
        if lot.is_expired(today):
            raise SoakedSeedExpiredError(soaked_seed_id, lot.expires_at)

        try:
            result = self.db.rpc("use_leftover_soaked_seed", {
                "p_soaked_id": soaked_seed_id,
                "p_quantity_trays": quantity_trays,
                "p_request_id": request_id,
                "p_user_id": user_id,
            }).execute()
        except Exception as e:
            message = str(e)
            if any(marker in message.lower() for marker in _INSUFFICIENT_MARKERS):
                raise InsufficientSeedError(
                    lot.variety_name or "this variety",
                    quantity_trays,
                    f"{lot.quantity_remaining} {lot.unit}",
                )
            logger.error("use_soaked_seed_failed", soaked_seed_id=soaked_seed_id, error=message)
            raise DatabaseError("rpc", message)

        created = int(result.data or 0)
        logger.info(
            "soaked_seed_used",
            soaked_seed_id=soaked_seed_id,
            requested=quantity_trays,
            created=created,
        )
        self.activity.log_activity(
            farm_uuid,
            "trays_created",
            f"Created {created} tray(s) from leftover {lot.variety_name or 'seed'}",
            {"soaked_seed_id": soaked_seed_id, "quantity_trays": created, "request_id": request_id},
            user_id=user_id,
        )
        return created

    def discard_soaked_seed(
        self,
        farm_uuid: str,
        soaked_seed_id: int,
        reason: str,
        user_id: Optional[str] = None,
    ) -> bool:
        """
        Discard a lot.

        Raises:
            SoakedSeedNotFoundError: If the lot doesn't exist
        """
        if not farm_uuid:
            raise MissingFarmScopeError()

        lot = self.get_soaked_seed(farm_uuid, soaked_seed_id)

        try:
            result = self.db.rpc("discard_soaked_seed", {
                "p_soaked_id": soaked_seed_id,
                "p_reason": reason,
                "p_user_id": user_id,
            }).execute()
        except Exception as e:
            logger.error("discard_soaked_seed_failed", soaked_seed_id=soaked_seed_id, error=str(e))
            raise DatabaseError("rpc", str(e))

        discarded = bool(result.data)
        logger.info("soaked_seed_discarded", soaked_seed_id=soaked_seed_id, discarded=discarded)
        if discarded:
            self.activity.log_activity(
                farm_uuid,
                "task_canceled",
                f"Discarded soaked seed: {lot.variety_name or 'Unknown'} "
                f"({lot.quantity_remaining} {lot.unit})",
                {
                    "soaked_seed_id": soaked_seed_id,
                    "task_type": "soak_discard",
                    "variety_name": lot.variety_name,
                    "request_id": lot.request_id,
                    "reason": reason,
                },
                user_id=user_id,
            )
        return discarded


# Singleton instance
_soaked_seed_service: Optional[SoakedSeedService] = None


def get_soaked_seed_service() -> SoakedSeedService:
    """Get the singleton soaked seed service instance."""
    global _soaked_seed_service
    if _soaked_seed_service is None:
        _soaked_seed_service = SoakedSeedService()
    return _soaked_seed_service
