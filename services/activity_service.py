"""
Activity log — audit trail of operator actions.

Logging an activity must never fail the operation it describes, so write
errors are logged and reported as False instead of raised.
"""

from datetime import datetime, timezone
from typing import Any, Optional
import structlog

from config import get_supabase_client

logger = structlog.get_logger(__name__)


class ActivityService:
    """Writes rows to activity_log."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "activity_log"

    def log_activity(
        self,
        farm_uuid: Optional[str],
        activity_type: str,
        description: str,
        metadata: Optional[dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> bool:
        """
        Record one activity.

        Args:
            farm_uuid: Farm scope; nothing is written without it
            activity_type: e.g. "tray_assigned", "harvest_recorded"
            description: Human-readable summary
            metadata: Free-form context
            user_id: Acting user, if known

        Returns:
            True if the row was written
        """
        if not farm_uuid:
            logger.warning("activity_not_logged_no_farm", activity_type=activity_type)
            return False

        try:
            self.db.table(self.table).insert({
                "farm_uuid": farm_uuid,
                "activity_type": activity_type,
                "description": description,
                "metadata": metadata or {},
                "created_by": user_id,
                "created_at": datetime.now(timezone.utc).isoformat(),
            }).execute()
        except Exception as e:
            logger.warning(
                "activity_log_failed",
                activity_type=activity_type,
                error=str(e),
            )
            return False

        return True


# Singleton instance
_activity_service: Optional[ActivityService] = None


def get_activity_service() -> ActivityService:
    """Get the singleton activity service instance."""
    global _activity_service
    if _activity_service is None:
        _activity_service = ActivityService()
    return _activity_service
