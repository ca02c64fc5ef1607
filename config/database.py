"""
Supabase client used by every service.

The client is created lazily and cached; tests patch
`services.<module>.get_supabase_client` with an in-memory double.
Farm scoping is applied by each query, never by the client.
"""

from supabase import create_client, Client
from functools import lru_cache
import structlog

from config.settings import settings
from exceptions import ExternalServiceError

logger = structlog.get_logger(__name__)


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get the cached Supabase client.

    Raises:
        ExternalServiceError: If the client cannot be created
    """
    logger.info("connecting_to_supabase", url=settings.supabase_url[:30] + "...")

    try:
        client = create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise ExternalServiceError("supabase", f"Failed to connect to Supabase: {e}") from e

    logger.info("supabase_connected")
    return client


def check_connection() -> dict:
    """
    Check the trays table is reachable.

    Returns:
        {"status": "healthy", "trays_count": n} or
        {"status": "unhealthy", "error": "..."}
    """
    try:
        result = get_supabase_client().table("trays").select(
            "tray_id", count="exact"
        ).limit(1).execute()
    except Exception as e:
        logger.warning("database_health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}

    return {"status": "healthy", "trays_count": result.count}


def reset_connection() -> None:
    """Drop the cached client so the next call reconnects."""
    get_supabase_client.cache_clear()
    logger.info("database_connection_reset")
