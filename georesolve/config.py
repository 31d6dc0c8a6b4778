"""Runtime configuration from environment variables (.env supported)."""

import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEFAULT_DATA_BASE_URL = "https://pub-349a836622034df3a45c179d98e8328a.r2.dev"
DEFAULT_INDEX_BASE_URL = "https://raw.githubusercontent.com/CommercialBotAl/re_data/main"


class Settings(BaseModel):
    """Engine settings."""

    data_base_url: str = Field(
        default=DEFAULT_DATA_BASE_URL,
        description="Host serving per-state index CSVs, GeoJSON and raw source datasets",
    )
    index_base_url: str = Field(
        default=DEFAULT_INDEX_BASE_URL,
        description="Host serving redfin_master_index.json and zip_master_index.csv",
    )
    fetch_timeout: float = Field(default=30.0, gt=0, description="Per-fetch timeout in seconds")
    feature_sample_size: int = Field(
        default=50,
        ge=1,
        description="How many GeoJSON features the payload reducer resolves to table ids",
    )
    search_limit: int = Field(default=50, ge=1)
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )
    logfire_token: str | None = None


@lru_cache
def get_settings() -> Settings:
    """Build settings once per process from the environment."""
    values: dict = {}
    if os.getenv("GEORESOLVE_DATA_BASE_URL"):
        values["data_base_url"] = os.getenv("GEORESOLVE_DATA_BASE_URL").rstrip("/")
    if os.getenv("GEORESOLVE_INDEX_BASE_URL"):
        values["index_base_url"] = os.getenv("GEORESOLVE_INDEX_BASE_URL").rstrip("/")
    if os.getenv("GEORESOLVE_FETCH_TIMEOUT"):
        values["fetch_timeout"] = float(os.getenv("GEORESOLVE_FETCH_TIMEOUT"))
    if os.getenv("GEORESOLVE_FEATURE_SAMPLE_SIZE"):
        values["feature_sample_size"] = int(os.getenv("GEORESOLVE_FEATURE_SAMPLE_SIZE"))
    if os.getenv("GEORESOLVE_SEARCH_LIMIT"):
        values["search_limit"] = int(os.getenv("GEORESOLVE_SEARCH_LIMIT"))
    if os.getenv("GEORESOLVE_CORS_ORIGINS"):
        values["cors_origins"] = [
            origin.strip()
            for origin in os.getenv("GEORESOLVE_CORS_ORIGINS").split(",")
            if origin.strip()
        ]
    values["logfire_token"] = os.getenv("LOGFIRE_TOKEN") or None
    return Settings(**values)
