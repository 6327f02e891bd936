from __future__ import annotations

from pydantic import AnyUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=False,
        extra="ignore",
    )

    SUPABASE_URL: AnyUrl
    SUPABASE_SERVICE_ROLE_KEY: str
    APP_ENV: str = "local"
    FRONTEND_CORS_ORIGINS: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"],
    )

    # sharing / discovery tunables
    BATCH_FETCH_CHUNK_SIZE: int = Field(default=30, ge=1)
    DISCOVERY_FETCH_CEILING: int = Field(default=100, ge=1)
    DISCOVERY_DEFAULT_PAGE_SIZE: int = Field(default=20, ge=1)
    SUBSCRIPTION_POLL_INTERVAL_SECONDS: float = Field(default=5.0, gt=0)
    SESSION_REGISTRY_MAX_SESSIONS: int = Field(default=10_000, ge=1)


settings = Settings()
