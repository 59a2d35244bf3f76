"""Settings for the programme services.

APP_ENV picks a profile (dev, test, staging, production); every field can
still be overridden by its own environment variable, e.g.
PENDING_UPDATE_EXPIRY_DAYS or SWEEP_ON_READ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
    """Immutable application settings resolved from environment."""

    database_url: str
    app_env: str = "dev"
    log_level: str = "INFO"

    # Negotiation windows
    pending_update_expiry_days: int = 14
    rejected_retention_days: int = 7
    expired_update_lookback_days: int = 7

    # Authoring limits
    max_training_days: int = 7
    exercise_lookup_limit: int = 500

    # Sweeps
    sweep_on_read: bool = True
    sweep_interval_seconds: int = 3600

    slow_query_ms: float = 250.0

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
    },
    "test": {
        "log_level": "WARNING",
    },
    "staging": {
        "log_level": "INFO",
    },
    "production": {
        "log_level": "WARNING",
        "slow_query_ms": 150.0,
    },
}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def get_database_url() -> str:
    """DATABASE_URL, falling back to a local PostgreSQL database."""
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    return "postgresql+psycopg2://localhost:5432/programmes"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    return Settings(
        database_url=get_database_url(),
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        pending_update_expiry_days=int(os.getenv("PENDING_UPDATE_EXPIRY_DAYS", "14")),
        rejected_retention_days=int(os.getenv("REJECTED_RETENTION_DAYS", "7")),
        expired_update_lookback_days=int(os.getenv("EXPIRED_UPDATE_LOOKBACK_DAYS", "7")),
        max_training_days=int(os.getenv("MAX_TRAINING_DAYS", "7")),
        exercise_lookup_limit=int(os.getenv("EXERCISE_LOOKUP_LIMIT", "500")),
        sweep_on_read=_env_bool("SWEEP_ON_READ", True),
        sweep_interval_seconds=int(os.getenv("SWEEP_INTERVAL_SECONDS", "3600")),
        slow_query_ms=float(os.getenv("SLOW_QUERY_MS", str(profile.get("slow_query_ms", 250.0)))),
    )
