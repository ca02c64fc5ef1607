"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )

    # ===================
    # SESSION
    # ===================
    session_file: str = Field(
        default=".sproutify_session.json",
        description="Path of the persisted session (farm scope and user identity)"
    )

    # ===================
    # READINESS WINDOW
    # ===================
    ready_window_lookback_days: int = Field(
        default=11,
        ge=0,
        le=60,
        description="Oldest sow date (days before today) still offered as ready"
    )
    ready_window_lookahead_days: int = Field(
        default=10,
        ge=0,
        le=60,
        description="Newest sow date (days after today) still offered as ready"
    )
    nominal_cycle_days: int = Field(
        default=12,
        ge=1,
        le=90,
        description="Growth cycle used when a recipe has no total-days figure"
    )

    # ===================
    # RECONCILIATION
    # ===================
    resolved_gap_suppression_seconds: float = Field(
        default=10.0,
        ge=0,
        le=120,
        description="Seconds a resolved gap stays hidden from reloads"
    )
    reload_watchdog_seconds: float = Field(
        default=45.0,
        ge=30,
        le=60,
        description="Seconds before a stuck reload is forcibly reset"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
