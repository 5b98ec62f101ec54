"""Configuration models for the rate ingestion service."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, List, Literal, Optional, Set

from pydantic import (
    BaseModel,
    Field,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0 Safari/537.36"
)


class SourceConfig(BaseModel):
    """A scraping source declared through configuration."""

    id: str = Field(..., description="Stable source identifier.")
    name: str = Field(..., description="Display name, copied onto every rate.")
    url: str = Field(..., description="Page that publishes the quote.")
    selector: str = Field(..., description="CSS locator of the rate text node.")
    currency: str = Field("USD", description="Base currency code.")
    target_currency: str = Field("BOB", description="Quote currency code.")
    rate_type: Literal["official", "parallel"] = Field(..., description="Rate category.")
    frequency: str = Field("0 */2 * * *", description="Cron cadence (minute hour dom month dow).")
    is_active: bool = Field(True, description="Whether the source is scraped.")

    @field_validator("currency", "target_currency")
    @classmethod
    def _currency_to_upper(cls, value: str) -> str:
        code = value.strip().upper()
        if not code:
            raise ValueError("currency must not be blank")
        return code

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        url = value.strip()
        if not url.startswith(("http://", "https://")):
            raise ValueError("url must be an http(s) URL")
        return url

    @field_validator("selector")
    @classmethod
    def _validate_selector(cls, value: str) -> str:
        selector = value.strip()
        if not selector:
            raise ValueError("selector must not be blank")
        return selector

    @field_validator("frequency")
    @classmethod
    def _validate_frequency(cls, value: str) -> str:
        parts = value.split()
        if len(parts) != 5:
            raise ValueError("frequency must be a 5-field cron expression")
        return " ".join(parts)


DEFAULT_SOURCES: list[dict[str, Any]] = [
    {
        "id": "1",
        "name": "Banco Central de Bolivia",
        "url": "https://www.bcb.gob.bo/",
        "selector": ".tipo-cambio .valor",
        "currency": "USD",
        "rate_type": "official",
        "frequency": "0 */6 * * *",
    },
    {
        "id": "2",
        "name": "Dolar Bolivia",
        "url": "https://dolarbolivia.com/",
        "selector": ".col-md-6 .card .card-body .h3",
        "currency": "USD",
        "rate_type": "parallel",
        "frequency": "0 */2 * * *",
    },
]


class Settings(BaseSettings):
    """Environment settings for scraping, persistence and delivery."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    redis_url: str = Field(
        "redis://localhost:6379/0",
        alias="INGESTION_REDIS_URL",
        description="Celery broker/backend Redis DSN.",
    )
    database_dsn: str = Field(
        "sqlite:///./var/storage/rates.db",
        alias="DATABASE_DSN",
        description="SQLAlchemy database URL.",
    )
    scrape_timeout_seconds: PositiveFloat = Field(
        20.0, alias="SCRAPE_TIMEOUT_SECONDS", description="Per-request fetch timeout (10-20s)."
    )
    scrape_max_workers: PositiveInt = Field(
        4, alias="SCRAPE_MAX_WORKERS", description="Concurrent fetches per cycle."
    )
    scrape_user_agent: str = Field(DEFAULT_USER_AGENT, alias="SCRAPE_USER_AGENT")
    scrape_accept_language: str = Field(
        "es-BO,es;q=0.8,en-US;q=0.5,en;q=0.3", alias="SCRAPE_ACCEPT_LANGUAGE"
    )
    single_value_min_rate: Optional[PositiveFloat] = Field(
        None,
        alias="SINGLE_VALUE_MIN_RATE",
        description="Lower bound for a lone midpoint token (exclusive).",
    )
    single_value_max_rate: Optional[PositiveFloat] = Field(
        None,
        alias="SINGLE_VALUE_MAX_RATE",
        description="Upper bound for a lone midpoint token (exclusive).",
    )
    scraping_sources: List[SourceConfig] = Field(
        default_factory=lambda: [SourceConfig.model_validate(item) for item in DEFAULT_SOURCES],
        alias="SCRAPING_SOURCES",
        description="JSON array of source definitions.",
    )
    telegram_token: Optional[SecretStr] = Field(None, alias="TELEGRAM_TOKEN")
    telegram_api_base: str = Field("https://api.telegram.org", alias="TELEGRAM_API_BASE")
    telegram_timeout_seconds: PositiveFloat = Field(10.0, alias="TELEGRAM_TIMEOUT_SECONDS")
    telegram_bot_polling: bool = Field(
        False, alias="TELEGRAM_BOT_POLLING", description="Run the command responder inside the worker."
    )
    vapid_public_key: Optional[str] = Field(None, alias="VAPID_PUBLIC_KEY")
    vapid_private_key: Optional[SecretStr] = Field(None, alias="VAPID_PRIVATE_KEY")
    vapid_claims_email: str = Field("mailto:contact@dollaralert.bo", alias="VAPID_CLAIMS_EMAIL")
    alert_threshold_percent: Optional[PositiveFloat] = Field(
        None,
        alias="ALERT_THRESHOLD_PERCENT",
        description="Emit threshold alerts when |change %| reaches this value.",
    )
    structlog_level: str = Field("INFO", alias="STRUCTLOG_LEVEL", description="Log level.")
    log_json: bool = Field(False, alias="LOG_JSON", description="Emit JSON log lines.")
    celery_worker_concurrency: PositiveInt = Field(2, alias="CELERY_WORKER_CONCURRENCY")
    celery_task_soft_time_limit: PositiveInt = Field(300, alias="CELERY_TASK_SOFT_TIME_LIMIT")

    @field_validator("scraping_sources", mode="before")
    @classmethod
    def _parse_sources(cls, value: Any) -> List[Any]:
        if value in (None, ""):
            return []
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValueError("SCRAPING_SOURCES must be a JSON array") from exc
            return parsed
        if isinstance(value, list):
            return value
        raise ValueError("SCRAPING_SOURCES must be a list")

    @field_validator("scraping_sources")
    @classmethod
    def _validate_unique_sources(cls, value: List[SourceConfig]) -> List[SourceConfig]:
        seen: Set[str] = set()
        for source in value:
            if source.id in seen:
                raise ValueError(f"duplicate scraping source id: {source.id}")
            seen.add(source.id)
        return value

    @field_validator("scrape_timeout_seconds")
    @classmethod
    def _clamp_timeout(cls, value: float) -> float:
        return min(max(value, 10.0), 20.0)

    @field_validator("database_dsn")
    @classmethod
    def _validate_dsn(cls, value: str) -> str:
        if "://" not in value:
            raise ValueError("DATABASE_DSN must be a valid database URL")
        return value

    @model_validator(mode="after")
    def _validate_band(self) -> "Settings":
        low, high = self.single_value_min_rate, self.single_value_max_rate
        if low is not None and high is not None and low >= high:
            raise ValueError("SINGLE_VALUE_MIN_RATE must be lower than SINGLE_VALUE_MAX_RATE")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Return the Settings instance built from the environment."""
    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(f"invalid environment configuration: {exc}") from exc


def reset_settings_cache() -> None:
    """Clear the Settings LRU cache (used by tests)."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
