import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigError

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(BaseModel):
    base_url: str = Field(default="https://www.shop.markaz.app", alias="CRAWL_BASE_URL")
    output_path: Path = Field(default=Path("data/catalog.json"), alias="CRAWL_OUTPUT")
    checkpoint_path: Optional[Path] = Field(default=None, alias="CRAWL_CHECKPOINT")

    concurrency: int = Field(default=4, ge=1, alias="CRAWL_CONCURRENCY")
    max_products: int = Field(default=0, ge=0, alias="CRAWL_MAX_PRODUCTS")
    fresh_days: float = Field(default=7.0, ge=0, alias="CRAWL_FRESH_DAYS")
    retries: int = Field(default=1, ge=0, alias="CRAWL_RETRIES")

    nav_timeout_ms: int = Field(default=60000, gt=0, alias="CRAWL_NAV_TIMEOUT_MS")
    task_timeout_s: float = Field(default=120.0, gt=0, alias="CRAWL_TASK_TIMEOUT_S")
    headless: bool = Field(default=True, alias="CRAWL_HEADLESS")

    # listing enumeration
    scroll_pause_ms: int = Field(default=700, ge=0, alias="CRAWL_SCROLL_PAUSE_MS")
    scroll_stable_rounds: int = Field(default=4, ge=1, alias="CRAWL_SCROLL_STABLE_ROUNDS")
    scroll_max_steps: int = Field(default=60, ge=1, alias="CRAWL_SCROLL_MAX_STEPS")
    pagination_floor: int = Field(default=20, ge=0, alias="CRAWL_PAGINATION_FLOOR")
    max_pages: int = Field(default=50, ge=1, alias="CRAWL_MAX_PAGES")

    progress_every: int = Field(default=10, ge=1, alias="CRAWL_PROGRESS_EVERY")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = {"populate_by_name": True}

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level {value!r}, expected one of {', '.join(LOG_LEVELS)}")
        return level

    @property
    def entry_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/explore"

    @property
    def resolved_checkpoint_path(self) -> Path:
        if self.checkpoint_path is not None:
            return self.checkpoint_path
        return self.output_path.with_name(f"{self.output_path.stem}.partial.json")


def _load_dotenv():
    # Load from the working directory if present, otherwise rely on environment variables.
    local_env = Path.cwd() / ".env"
    if local_env.exists():
        load_dotenv(local_env)
    else:
        load_dotenv()


@lru_cache()
def get_settings() -> Settings:
    _load_dotenv()
    try:
        return Settings(**os.environ)
    except ValidationError as exc:
        invalid = [str(e["loc"][0]) for e in exc.errors()]
        detail = f"Invalid crawler environment variables: {', '.join(invalid)}"
        raise ConfigError(detail) from exc
