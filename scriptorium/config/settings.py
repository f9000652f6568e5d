from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "scriptorium"
    db_username: str = "scriptorium"
    db_password: str = "secret"

    completion_provider: str = "openai"
    completion_api_key: str = ""
    completion_base_url: str = ""
    completion_timeout_seconds: int = 120
    default_model: str = "gpt-4o-mini"

    default_source_language: str = "Latin"
    default_target_language: str = "English"

    item_max_attempts: int = Field(default=3, ge=1)
    item_retry_base_seconds: float = 1.0
    item_retry_max_seconds: float = 8.0
    slice_budget_seconds: int = 270

    batch_min_items: int = 50
    batch_max_failure_ratio: float = Field(default=1.0, ge=0.0, le=1.0)
    batch_submission_grace_seconds: int = 900

    worker_mode: Literal["once", "loop"] = "once"
    worker_poll_interval_seconds: int = 60
    sweep_max_jobs: int = 20

    image_service_url: str = "http://localhost:8080/derive"
    image_service_timeout_seconds: int = 60
