"""
Star Oracle configuration.
Read once from the environment, then held still.
"""

import os
from functools import lru_cache
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Configuration that adapts to environment without complaint."""

    def __init__(self):
        self.nasa_api_key = os.getenv("NASA_API_KEY", "DEMO_KEY")
        self.nasa_base_url = os.getenv("NASA_BASE_URL", "https://api.nasa.gov/neo/rest/v1")
        self.mongodb_url = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
        self.database_name = os.getenv("DATABASE_NAME", "star_oracle")
        # Multi-document transactions need a replica set; turning this off
        # downgrades registration to compensating deletes
        self.mongo_transactions = _env_bool("MONGO_TRANSACTIONS", True)

        # No fallback: tokens are never signed with a well-known key
        self.jwt_secret: Optional[str] = os.getenv("JWT_SECRET") or None
        self.jwt_algorithm = "HS256"
        self.access_token_ttl = int(os.getenv("ACCESS_TOKEN_TTL", "86400"))  # 24 hours
        self.session_ttl = int(os.getenv("SESSION_TTL", "86400"))
        self.session_sweep_interval = int(os.getenv("SESSION_SWEEP_INTERVAL", "3600"))
        self.bcrypt_rounds = int(os.getenv("BCRYPT_ROUNDS", "12"))

        # Discipline in API consumption
        self.request_timeout = float(os.getenv("REQUEST_TIMEOUT", "30"))
        self.request_delay = float(os.getenv("REQUEST_DELAY", "0.1"))
        self.cache_ttl = int(os.getenv("CACHE_TTL", "300"))
        self.max_feed_days = int(os.getenv("MAX_FEED_DAYS", "7"))

        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()


@lru_cache()
def get_settings() -> Settings:
    """Single source of truth, cached for efficiency."""
    return Settings()
