"""
Session accessor: current farm and user from the persisted session file.

The file is written by the sign-in flow as camelCase JSON
({"farmUuid": ..., "userId": ..., "farmName": ...}); older files use
snake_case. Both are accepted.
"""

from pathlib import Path
from typing import Optional
import json
import structlog

from config import settings
from exceptions import MissingFarmScopeError
from models.session import FarmSession
from utils.record_adapter import normalize_row

logger = structlog.get_logger(__name__)


class SessionService:
    """Reads and writes the session file."""

    def __init__(self, session_file: Optional[str] = None):
        self.path = Path(session_file or settings.session_file)

    def load(self) -> FarmSession:
        """
        Current session. A missing or unreadable file is an empty session.
        """
        if not self.path.exists():
            logger.debug("session_file_missing", path=str(self.path))
            return FarmSession()

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("session_file_unreadable", path=str(self.path), error=str(e))
            return FarmSession()

        if not isinstance(raw, dict):
            logger.warning("session_file_malformed", path=str(self.path))
            return FarmSession()

        row = normalize_row(raw)
        row = {key: value for key, value in row.items() if value is not None}
        return FarmSession(**row)

    def save(self, session: FarmSession) -> None:
        payload = {
            "farmUuid": session.farm_uuid,
            "userId": session.user_id,
            "email": session.email,
            "role": session.role,
            "farmName": session.farm_name,
        }
        self.path.write_text(json.dumps(payload), encoding="utf-8")
        logger.info("session_saved", farm_uuid=session.farm_uuid)

    def require_farm_uuid(self) -> str:
        """
        Farm scope of the current session.

        Raises:
            MissingFarmScopeError: If no farm is selected
        """
        farm_uuid = self.load().farm_uuid
        if not farm_uuid:
            raise MissingFarmScopeError()
        return farm_uuid

    def resolve_farm_uuid(self, explicit: Optional[str] = None) -> str:
        """An explicitly passed farm (e.g. a request header) wins over the session."""
        if explicit:
            return explicit
        return self.require_farm_uuid()


# Singleton instance
_session_service: Optional[SessionService] = None


def get_session_service() -> SessionService:
    """Get the singleton session service instance."""
    global _session_service
    if _session_service is None:
        _session_service = SessionService()
    return _session_service
