from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Dropship Import API"
    env: str = "dev"
    admin_token: str = "dev-admin-token"
    enrichment_mode: str = Field(default="live", pattern="^(live|fixture)$")
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"])

    model_config = SettingsConfigDict(env_file=".env", env_prefix="DROPSHIP_API_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
