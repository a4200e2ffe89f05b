"""
Configuration management for the Campus Live-State engine.

Loads settings from .env via pydantic-settings.

Notes:
    - Earnings policy and cashback rate are configuration, not business law
    - validate_production_settings() enforces a usable store + strict CORS in production
    - FALLBACK_ENABLED controls the bundled demo dataset shown on empty snapshots
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database (SQL store + feed cursors) ─────────────────────────
    database_url: str = "sqlite:///./data/campus_live.db"

    # ── Store backend ───────────────────────────────────────────────
    store_backend: str = "sql"          # "sql" | "rest"
    rest_store_url: str = ""            # PostgREST-compatible base URL
    rest_store_api_key: str = ""
    rest_store_timeout_seconds: float = 10.0

    # ── Change feed poller ──────────────────────────────────────────
    feed_enabled: bool = True
    feed_poll_seconds: float = 2.0
    feed_cache_size: int = 5000         # rows remembered per table for old-row diffs

    # ── Live views ──────────────────────────────────────────────────
    eta_refresh_seconds: float = 30.0
    recent_transactions_limit: int = 10
    active_orders_limit: int = 10
    session_expiry_warning_minutes: int = 10
    notification_buffer_size: int = 100
    view_mount_rate_limit: int = 30     # mounts per client IP per minute

    # ── Aggregates ──────────────────────────────────────────────────
    rider_base_rate: float = 50.0       # per delivered order
    rider_bonus_threshold: int = 15     # deliveries needed for the bonus
    rider_bonus_amount: float = 200.0
    cashback_rate: float = 0.05         # share of completed credit volume

    # ── Fallback ────────────────────────────────────────────────────
    # When True, empty snapshots render the bundled demo dataset until
    # the first live row arrives.
    fallback_enabled: bool = True

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:4028,http://127.0.0.1:4028"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.store_backend not in ("sql", "rest"):
            raise ValueError(
                f"STORE_BACKEND must be 'sql' or 'rest', got '{self.store_backend}'"
            )

        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if self.store_backend == "rest" and not self.rest_store_url:
                raise ValueError(
                    "REST_STORE_URL must be set when STORE_BACKEND=rest in production."
                )
            logger.info("✅ Production settings validated")
        else:
            # Warn about demo-friendly settings in non-production
            warnings = []
            if self.fallback_enabled:
                warnings.append("FALLBACK_ENABLED=true (demo data on empty snapshots)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            if self.store_backend == "rest" and not self.rest_store_url:
                warnings.append("STORE_BACKEND=rest but REST_STORE_URL is empty")
            for w in warnings:
                logger.warning(f"⚠️  {w}")


# Global settings instance
settings = Settings()
