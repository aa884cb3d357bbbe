from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_COMPETITOR_RANGES: dict[str, tuple[float, float]] = {
    "amazon": (1.82, 1.88),
    "costco": (1.80, 1.85),
    "ebay": (1.87, 1.93),
    "sams": (1.80, 1.83),
}


class WorkerSettings(BaseSettings):
    database_url: str = "sqlite:///./dropship.db"
    redis_url: str = "redis://localhost:6379/0"
    cache_enabled: bool = False

    keepa_api_key: str | None = None
    keepa_base_url: str = "https://api.keepa.com"
    keepa_domain: int = 1
    keepa_timeout_seconds: float = 30.0
    keepa_cache_ttl_seconds: int = 86400

    daily_token_limit: int = 10000
    tokens_per_identifier: int = 1
    token_reset_hour_utc: int = Field(default=0, ge=0, le=23)

    sub_batch_size: int = Field(default=10, ge=1)
    sub_batch_pause_seconds: float = Field(default=0.1, ge=0.0)
    max_items_per_import: int = Field(default=500, ge=1)

    markup_multiplier: float = 1.70
    competitor_minimum_markup: float = 1.10
    competitor_ranges: dict[str, tuple[float, float]] = Field(default_factory=lambda: dict(DEFAULT_COMPETITOR_RANGES))
    profit_threshold_percent: float = 30.0
    fuzzy_title_threshold: float = Field(default=0.85, ge=0.0, le=1.0)

    shopify_store_domain: str | None = None
    shopify_access_token: str | None = None
    shopify_api_version: str = "2024-01"
    shopify_timeout_seconds: float = 15.0
    push_max_attempts: int = Field(default=4, ge=1)
    push_base_delay_seconds: float = 0.5
    push_max_delay_seconds: float = 2.0

    model_config = SettingsConfigDict(env_file=".env", env_prefix="DROPSHIP_", extra="ignore")


@lru_cache
def get_settings() -> WorkerSettings:
    return WorkerSettings()
