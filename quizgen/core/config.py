from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "Biblical Quiz Generation API"
    environment: Literal["dev", "test", "prod"] = "dev"
    debug: bool = False

    database_url: str = "sqlite:///./app.db"
    auto_create_tables: bool = True

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])
    rate_limit_per_minute: int = 60

    generator_webhook_url: str = ""
    generator_api_key: str = ""
    generator_timeout_seconds: float = 100.0
    generator_ack_timeout_seconds: float = 10.0
    generator_ack_max_attempts: int = 3
    generator_ack_backoff_seconds: float = 1.0
    generator_ack_backoff_max_seconds: float = 8.0
    public_base_url: str = "http://localhost:8000"

    job_ttl_seconds: int = 15 * 60
    job_processing_grace_seconds: int = 120 * 60
    job_failed_retention_seconds: int = 5 * 60
    job_sweep_interval_seconds: int = 10 * 60

    duplicate_window_seconds: int = 5 * 60
    min_start_lead_minutes: int = 5
    default_passing_score: int = 70

    def callback_url(self, path: str) -> str:
        return f"{self.public_base_url.rstrip('/')}{path}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
