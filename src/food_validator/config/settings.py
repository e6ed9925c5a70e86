"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "food-validator"
    broker_backend: Literal["redis", "memory"] = "redis"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = Field(default=0, ge=0)
    redis_socket_timeout_s: float = Field(default=5.0, gt=0.0)
    queue_name: str = "food-validation"
    queue_concurrency: int = Field(default=5, ge=1)
    job_attempts: int = Field(default=3, ge=1)
    job_backoff_type: Literal["exponential", "fixed"] = "exponential"
    job_backoff_s: float = Field(default=2.0, ge=0.0)
    job_timeout_s: float = Field(default=30 * 60, gt=0.0)
    remove_on_complete_s: float = Field(default=24 * 60 * 60, ge=0.0)
    remove_on_fail_s: float = Field(default=7 * 24 * 60 * 60, ge=0.0)
    worker_poll_interval_s: float = Field(default=0.5, gt=0.0)
    maintenance_interval_s: float = Field(default=30.0, gt=0.0)
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_s: float = Field(default=120.0, ge=0.5)
    openai_api_key: str = ""
    system_prompt_path: str = ""
    homepage_path: str = ""

    model_config = SettingsConfigDict(
        env_prefix="FOOD_VALIDATOR_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
