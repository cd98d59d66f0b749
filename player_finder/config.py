"""
Configuration module for the Player Finder service.

Loads environment variables and provides configuration singletons.
Uses pydantic for validation.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
import os


class Config(BaseSettings):
    """
    Application configuration loaded from environment variables.

    All values come from .env file or system environment.
    Type hints provide validation (pydantic converts types automatically).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # ============================================================
    # FIREBASE CONFIGURATION (REQUIRED)
    # ============================================================
    FIREBASE_PROJECT_ID: str = ""
    """Firebase project ID holding the users, saved_searches and notifications collections."""

    GOOGLE_APPLICATION_CREDENTIALS: str = "/config/serviceAccountKey.json"
    """Path to Firebase service account JSON file."""

    # ============================================================
    # SEARCH CONFIGURATION
    # ============================================================
    DEFAULT_RADIUS_KM: int = 50
    """Search radius used when the request does not specify one."""

    MIN_RADIUS_KM: int = 1
    """Smallest accepted search radius."""

    MAX_RADIUS_KM: int = 500
    """Largest accepted search radius."""

    PROXIMITY_BAND_KM: float = 5.0
    """Candidates closer together than this are ranked by score instead of distance."""

    COACH_MIN_SCORE: int = 50
    """Coach candidates scoring below this are dropped from results."""

    MAX_CANDIDATES: int = 500
    """Maximum candidates to fetch from the directory per query."""

    BOUNDING_BOX_PREFILTER: bool = True
    """Skip candidates outside the search circle's bounding box before Haversine."""

    # ============================================================
    # SAVED SEARCH CONFIGURATION
    # ============================================================
    NOTIFY_TOP_N: int = 3
    """How many top-ranked matches get notified when a search is saved."""

    COUNTER_UPDATE_RETRIES: int = 3
    """Attempts for a saved search counter update before giving up on version conflicts."""

    # ============================================================
    # GRAPH CONFIGURATION
    # ============================================================
    GRAPH_TIMEOUT: int = 30
    """Maximum seconds a graph can run before timeout. Default: 30 seconds."""

    # ============================================================
    # SECURITY CONFIGURATION
    # ============================================================
    SERVICE_TOKEN: str = os.getenv("SERVICE_TOKEN", "")
    """Shared secret for authenticating requests from the federation backend."""

    # ============================================================
    # SERVER CONFIGURATION
    # ============================================================
    PORT: int = 8000
    """Port to run FastAPI server on. Default: 8000."""

    HOST: str = "0.0.0.0"
    """Host to bind to. 0.0.0.0 = accessible from network."""

    DEBUG: bool = False
    """Enable debug logging. Set True for development, False for production."""


# ============================================================
# SINGLETON INSTANCE
# ============================================================
# Load config once at startup, reuse throughout app
config = Config()


# ============================================================
# VALIDATION AT STARTUP
# ============================================================
def validate_config() -> dict:
    """
    Validate that required config values are set.

    Called at app startup to fail fast if config is incomplete.

    Returns:
        dict: Status of each checked area

    Raises:
        ValueError: If required config is missing or inconsistent
    """
    errors = []

    if not config.FIREBASE_PROJECT_ID:
        errors.append("FIREBASE_PROJECT_ID is required")

    if config.MIN_RADIUS_KM < 1 or config.MIN_RADIUS_KM > config.MAX_RADIUS_KM:
        errors.append("MIN_RADIUS_KM must be >= 1 and <= MAX_RADIUS_KM")

    if not config.MIN_RADIUS_KM <= config.DEFAULT_RADIUS_KM <= config.MAX_RADIUS_KM:
        errors.append("DEFAULT_RADIUS_KM must lie between MIN_RADIUS_KM and MAX_RADIUS_KM")

    if config.NOTIFY_TOP_N < 0:
        errors.append("NOTIFY_TOP_N must not be negative")

    if config.COUNTER_UPDATE_RETRIES < 1:
        errors.append("COUNTER_UPDATE_RETRIES must be at least 1")

    if errors:
        raise ValueError("Configuration errors:\n" + "\n".join([f"  - {e}" for e in errors]))

    return {
        "firebase": "✓ Configured" if config.FIREBASE_PROJECT_ID else "✗ Missing",
        "radius": f"✓ {config.MIN_RADIUS_KM}-{config.MAX_RADIUS_KM} km (default {config.DEFAULT_RADIUS_KM})",
        "notifications": f"✓ Top {config.NOTIFY_TOP_N}",
        "auth": "✓ Token required" if config.SERVICE_TOKEN else "✗ Open",
    }


if __name__ == "__main__":
    """Allow testing config by running: python -m player_finder.config"""
    try:
        status = validate_config()
        print("✅ Configuration is valid!")
        print("\nConfiguration Status:")
        for key, value in status.items():
            print(f"  {key}: {value}")
    except ValueError as e:
        print(f"❌ Configuration error:\n{e}")
        exit(1)
