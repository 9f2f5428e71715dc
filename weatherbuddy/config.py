"""
Weather Buddy Configuration.

Pydantic Settings v2 — loads from .env, environment variables.
"""

import json
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "Weather Buddy"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # ── API ───────────────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8002, alias="API_PORT")
    allowed_origins: Annotated[List[str], NoDecode] = Field(
        default=["http://localhost:8081", "http://localhost:19006"],
        alias="CORS_ORIGINS",
    )

    # ── Storage ───────────────────────────────────────────────────────────
    storage_backend: str = Field(default="file", alias="STORAGE_BACKEND")  # memory | file | redis
    state_file_path: str = Field(default=".weatherbuddy/state.json", alias="STATE_FILE_PATH")
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    storage_namespace: str = Field(default="", alias="STORAGE_NAMESPACE")

    # ── Alerting ──────────────────────────────────────────────────────────
    weather_history_limit: int = Field(default=24, alias="WEATHER_HISTORY_LIMIT")
    alert_history_limit: int = Field(default=10, alias="ALERT_HISTORY_LIMIT")
    alert_cooldown_minutes: int = Field(default=120, alias="ALERT_COOLDOWN_MINUTES")
    alert_webhook_url: str = Field(default="", alias="ALERT_WEBHOOK_URL")
    expo_push_tokens: Annotated[List[str], NoDecode] = Field(
        default_factory=list, alias="EXPO_PUSH_TOKENS"
    )  # JSON array or comma-separated
    in_app_inbox_size: int = Field(default=50, alias="IN_APP_INBOX_SIZE")

    # ── Enrichment (LLM) ──────────────────────────────────────────────────
    enrichment_enabled: bool = Field(default=True, alias="ENRICHMENT_ENABLED")
    enrichment_timeout_seconds: float = Field(default=5.0, alias="ENRICHMENT_TIMEOUT_SECONDS")
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    llm_api_url: str = Field(
        default="https://api.openai.com/v1/chat/completions", alias="LLM_API_URL"
    )
    llm_model: str = Field(default="gpt-4o-mini", alias="LLM_MODEL")

    # ── Weather provider (Open-Meteo) ─────────────────────────────────────
    open_meteo_url: str = Field(default="https://api.open-meteo.com/v1", alias="OPEN_METEO_URL")
    weather_timeout_seconds: float = Field(default=10.0, alias="WEATHER_TIMEOUT_SECONDS")
    weather_retry_attempts: int = Field(default=3, alias="WEATHER_RETRY_ATTEMPTS")

    # ── Default location (scheduler / manual runs) ────────────────────────
    default_latitude: float = Field(default=52.52, alias="DEFAULT_LATITUDE")
    default_longitude: float = Field(default=13.405, alias="DEFAULT_LONGITUDE")
    default_city: str = Field(default="", alias="DEFAULT_CITY")
    default_timezone: str = Field(default="", alias="DEFAULT_TIMEZONE")

    # ── Scheduler ─────────────────────────────────────────────────────────
    check_interval_minutes: int = Field(default=30, alias="CHECK_INTERVAL_MINUTES")

    # ── Operational ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")  # console | json

    @field_validator("allowed_origins", "expo_push_tokens", mode="before")
    @classmethod
    def split_list(cls, v):
        """Accept a JSON array or a comma-separated string."""
        if not isinstance(v, str):
            return v
        v = v.strip()
        if v.startswith("["):
            return json.loads(v)
        return [item.strip() for item in v.split(",") if item.strip()]


settings = Settings()
