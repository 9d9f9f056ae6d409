"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from the project root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./parts_radar.db"

    # Google Places / Geocoding
    google_maps_api_key: str = ""
    places_max_results: int = 20

    # Caching (seconds). Staleness only affects ranking freshness.
    partner_cache_ttl_seconds: int = 60
    request_cache_ttl_seconds: int = 30

    # Default scoring weights
    weight_cost: float = 0.4
    weight_speed: float = 0.3
    weight_reliability: float = 0.3

    # Request defaults
    default_radius_km: float = 50.0

    # CORS / Frontend
    cors_origins: str = "http://localhost:5173"

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def default_weights(self) -> dict[str, float]:
        return {
            "cost": self.weight_cost,
            "speed": self.weight_speed,
            "reliability": self.weight_reliability,
        }


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
