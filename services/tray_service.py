"""
Tray service — tray reads and loss recording outside the gap flows.
"""

from datetime import datetime, timezone
from typing import Optional
import structlog

from config import get_supabase_client
from config.growing import LOSS_REASONS, LOSS_REASON_VALUES, TRAY_ACTIVE, TRAY_LOST
from exceptions import (
    DatabaseError,
    EmptySelectionError,
    InvalidLossReasonError,
    MissingFarmScopeError,
    TrayNotFoundError,
)
from models.tray import Tray
from services.activity_service import get_activity_service
from utils.record_adapter import normalize_rows

logger = structlog.get_logger(__name__)


class TrayService:
    """Tray business logic."""

    def __init__(self):
        self.db = get_supabase_client()
        self.activity = get_activity_service()
        self.table = "trays"

    def get_by_id(self, farm_uuid: str, tray_id: int) -> Tray:
        """
        Get a tray of this farm.

        Raises:
            TrayNotFoundError: If the tray doesn't exist in the farm
        """
        try:
            result = self.db.table(self.table).select("*").eq(
                "tray_id", tray_id
            ).eq(
                "farm_uuid", farm_uuid
            ).limit(1).execute()
        except Exception as e:
            logger.error("get_tray_failed", tray_id=tray_id, error=str(e))
            raise DatabaseError("select", str(e))

        rows = normalize_rows(result.data, id_field="tray_id")
        if not rows:
            raise TrayNotFoundError(tray_id)
        return Tray(**rows[0])

    def count_active(self, farm_uuid: str) -> int:
        """Number of active, unharvested trays."""
        try:
            result = self.db.table(self.table).select(
                "tray_id", count="exact"
            ).eq(
                "farm_uuid", farm_uuid
            ).eq(
                "status", TRAY_ACTIVE
            ).is_("harvest_date", "null").execute()
        except Exception as e:
            logger.error("count_active_trays_failed", farm_uuid=farm_uuid, error=str(e))
            raise DatabaseError("select", str(e))

        return result.count or 0

    @staticmethod
    def loss_reasons() -> list[dict]:
        return LOSS_REASONS

    def mark_trays_as_lost(
        self,
        farm_uuid: str,
        tray_ids: list[int],
        reason: str,
        notes: Optional[str] = None,
    ) -> int:
        """
        Mark trays lost with a reason from the loss catalogue.

        Args:
            farm_uuid: Farm scope
            tray_ids: Trays to mark
            reason: One of LOSS_REASON_VALUES
            notes: Free text (expected for "other")

        Returns:
            Number of trays updated

        Raises:
            EmptySelectionError: No trays given
            InvalidLossReasonError: Unknown reason
        """
        if not farm_uuid:
            raise MissingFarmScopeError()
        if not tray_ids:
            raise EmptySelectionError("tray")
        if reason not in LOSS_REASON_VALUES:
            raise InvalidLossReasonError(reason, sorted(LOSS_REASON_VALUES))

        try:
            result = self.db.table(self.table).update({
                "status": TRAY_LOST,
                "loss_reason": reason,
                "lost_at": datetime.now(timezone.utc).isoformat(),
                "loss_notes": notes or None,
            }).in_(
                "tray_id", tray_ids
            ).eq(
                "farm_uuid", farm_uuid
            ).execute()
        except Exception as e:
            logger.error("mark_trays_lost_failed", tray_ids=tray_ids, error=str(e))
            raise DatabaseError("update", str(e))

        updated = len(result.data or [])
        logger.info("trays_marked_lost", count=updated, reason=reason)
        if updated:
            self.activity.log_activity(
                farm_uuid,
                "task_canceled",
                f"Marked {updated} tray{'s' if updated != 1 else ''} as lost",
                {
                    "tray_ids": tray_ids,
                    "tray_count": updated,
                    "loss_reason": reason,
                    "loss_notes": notes,
                },
            )
        return updated


# Singleton instance
_tray_service: Optional[TrayService] = None


def get_tray_service() -> TrayService:
    """Get the singleton tray service instance."""
    global _tray_service
    if _tray_service is None:
        _tray_service = TrayService()
    return _tray_service
