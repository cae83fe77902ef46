"""Application configuration using Pydantic settings."""

from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = "Splatgen Backend"
    environment: str = "development"
    debug: bool = False

    api_v1_prefix: str = "/v1"
    cors_allowed_origins: List[str] = ["*"]

    redis_url: str = "redis://localhost:6379/0"

    celery_broker_url: str | None = None
    celery_result_backend: str | None = None
    celery_queue: str = "splat_generation"

    state_backend: Literal["redis", "memory"] = "redis"
    state_key_prefix: str = "splatgen"

    storage_root: Path = Path("var/storage")
    scratch_dir: Optional[Path] = None
    public_base_url: str = "http://localhost:8000/files"

    splat_service_url: str = "http://localhost:8080"
    generation_timeout: int = Field(default=60, ge=10, le=300)
    download_timeout: int = 30
    health_timeout: int = 5

    default_format: Literal["sog", "ply"] = "sog"
    max_file_size: int = Field(default=0, ge=0)

    max_retries: int = 3
    retry_backoff_base: int = 10
    defer_countdown: int = 15
    persist_failures: bool = False

    viewer_renderer: Literal["playcanvas", "link"] = "playcanvas"
    viewer_width: str = "100%"
    viewer_height: str = "600px"
    enable_vr: bool = True
    enable_ar: bool = False
    auto_generate: bool = False

    poll_interval: float = 3.0
    poll_timeout: float = 300.0

    auth_jwt_secret: str = ""
    auth_token_header: str = "Authorization"

    @property
    def task_soft_time_limit(self) -> int:
        """Upper bound for one worker execution before Celery interrupts it."""

        return self.generation_timeout + self.download_timeout + 30

    @property
    def task_time_limit(self) -> int:
        return self.task_soft_time_limit + 30


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
