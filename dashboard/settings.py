from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DashboardSettings(BaseSettings):
    api_base_url: str = Field("", alias="API_BASE_URL")
    backend_session_secret: str = Field("", alias="BACKEND_SESSION_SECRET")
    user_email: str = Field("", alias="DASHBOARD_USER_EMAIL")

    local_database_url: str = Field("sqlite+aiosqlite:///life_dashboard_local.db", alias="LOCAL_DATABASE_URL")

    autosave_delay_seconds: float = Field(4.0, alias="AUTOSAVE_DELAY_SECONDS")
    request_timeout_seconds: float = Field(10.0, alias="REQUEST_TIMEOUT_SECONDS")
    completion_mode: Literal["toggle", "increment"] = Field("toggle", alias="COMPLETION_MODE")

    streak_lookback_days: int = Field(365, alias="STREAK_LOOKBACK_DAYS")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    def is_remote_enabled(self) -> bool:
        return bool(self.api_base_url and self.backend_session_secret and self.user_email)


_settings: DashboardSettings | None = None


def get_settings() -> DashboardSettings:
    global _settings
    if _settings is None:
        _settings = DashboardSettings()
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
