"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development, and the alert
policy constants default to the values the decision engine is calibrated
against.

Usage:
    from floodwatch.core.config import settings
    print(settings.CONFIDENCE_THRESHOLD)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "FloodWatch Guwahati"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Clustering / admission gate ──
    CLUSTER_RADIUS_METERS: float = 500.0
    MIN_REPORTS_FOR_ALERT: int = 2
    CONFIDENCE_THRESHOLD: int = 3
    REPORT_STALENESS_MINUTES: int = 120

    # ── Confidence scoring ──
    RECENCY_WINDOW_MINUTES: int = 10
    SENSOR_PROXIMITY_DEGREES: float = 0.005  # ≈ 500 m bounding box
    PHOTO_FLOOD_THRESHOLD: float = 0.6  # min verifier confidence to count

    # ── Alert lifecycle ──
    ALERT_DURATION_MINUTES: int = 60
    ALERT_RADIUS_METERS: float = 800.0
    FOLLOW_UP_DELAY_SECONDS: int = 60
    FOLLOW_UP_EXTENSION_MINUTES: int = 30
    EXPIRY_POLICY: str = "advisory"  # advisory | hard

    # ── Road-state transitions ──
    CONFIRM_STALE_MINUTES: int = 15
    MIN_RESOLVED_FOR_MONITORING: int = 1
    MIN_RESOLVED_FOR_NORMAL: int = 2
    MONITORING_MAX_RAINFALL_MM: float = 5.0
    RESOLVE_MAX_RAINFALL_MM: float = 2.0

    # ── Geocoding ──
    NEAR_AREA_THRESHOLD_METERS: float = 2000.0

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
