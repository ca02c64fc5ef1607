"""
Configuration module.

Exports:
    settings / get_settings: Environment-driven settings
    get_supabase_client: Cached Supabase client
    check_connection: Database health check
"""

from config.settings import settings, get_settings, Settings
from config.database import get_supabase_client, check_connection, reset_connection

__all__ = [
    "settings",
    "get_settings",
    "Settings",
    "get_supabase_client",
    "check_connection",
    "reset_connection",
]
