"""
backend/app/config.py

Purpose:
    Central settings loading for the match intelligence backend: provider
    credentials, cache TTLs, per-dependency circuit breaker tuning, network
    timeouts, and the model blend weights.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    # Providers (empty key = provider not configured)
    ODDSAPIKEY: str = ""
    THEODDSAPI_BASE_URL: str = "https://api.the-odds-api.com/v4"
    API_SPORTS_KEY: str = ""
    API_SPORTS_SEASON: int | None = None  # None = derive from current date

    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB: str = "matchintel"
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # Result cache (final unified payload per match)
    MATCH_CACHE_TTL_SECONDS: int = 300  # 5 minutes
    MATCH_CACHE_COALESCE_INFLIGHT: bool = True

    # Enrichment caches (team identity + stat payloads outlive the result cache)
    ENRICHMENT_CACHE_TTL_SECONDS: int = 3600
    TEAM_IDENTITY_CACHE_TTL_SECONDS: int = 86400

    # Odds provider settings
    ODDS_CACHE_TTL_SECONDS: int = 300
    ODDS_STALE_MAX_SECONDS: int = 1800  # last good list served on refresh failure up to this age

    # Network bounds (per call, enforced with asyncio.wait_for)
    ENRICHMENT_TIMEOUT_SECONDS: float = 12.0
    ODDS_TIMEOUT_SECONDS: float = 8.0
    DATABASE_TIMEOUT_SECONDS: float = 5.0
    HTTP_TIMEOUT_SECONDS: float = 10.0
    HTTP_MAX_RETRIES: int = 1
    HTTP_BASE_DELAY_SECONDS: float = 1.0

    # Circuit breakers
    ENRICHMENT_BREAKER_THRESHOLD: int = 5
    ENRICHMENT_BREAKER_COOLDOWN_SECONDS: float = 30.0
    ENRICHMENT_BREAKER_RESET_SECONDS: float = 180.0
    ODDS_BREAKER_THRESHOLD: int = 3
    ODDS_BREAKER_COOLDOWN_SECONDS: float = 45.0
    ODDS_BREAKER_RESET_SECONDS: float = 300.0
    BREAKER_BACKOFF_FACTOR: float = 2.0
    BREAKER_MAX_COOLDOWN_SECONDS: float = 600.0

    # Model blend: de-vigged market probability vs. signal-driven probability
    MODEL_MARKET_WEIGHT: float = 0.6
    MODEL_SIGNAL_WEIGHT: float = 0.4

    # Detached snapshot writes after live computations
    SNAPSHOT_WRITES_ENABLED: bool = True
    SNAPSHOT_RETENTION_DAYS: int = 30
    CACHE_PURGE_INTERVAL_SECONDS: int = 60

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _check_blend_weights(self) -> "Settings":
        for name in ("MODEL_MARKET_WEIGHT", "MODEL_SIGNAL_WEIGHT"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        total = self.MODEL_MARKET_WEIGHT + self.MODEL_SIGNAL_WEIGHT
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"model blend weights must sum to 1.0, got {total}")
        return self


settings = Settings()
