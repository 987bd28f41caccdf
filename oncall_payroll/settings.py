from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "OnCallPayroll"
    pagerduty_token: str = ""
    pagerduty_api_url: str = "https://api.pagerduty.com"
    pagerduty_timeout_seconds: int = 15
    pagerduty_page_limit: int = 50
    payroll_timezone: str = ""
    default_hourly_rate: float | None = None
    default_schedule_id: str | None = None
    cors_allow_origins: str = "http://127.0.0.1:5173,http://localhost:5173"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


def get_cors_origins() -> list[str]:
    raw = get_settings().cors_allow_origins
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_pagerduty_api_url() -> str:
    return get_settings().pagerduty_api_url.rstrip("/")
