"""Centralised settings loaded from environment / .env file."""

from zoneinfo import ZoneInfo

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # silently ignore env vars not declared as fields
    )

    # Links & locale
    app_base_url: str = "http://localhost:3000"
    local_timezone: str = Field("UTC", description="IANA zone used for the reminder 'today' boundary")

    # Protocol loading
    strict_conditions: bool = False  # reject a protocol carrying a malformed condition
    default_window_days: int = 7
    default_duration_weeks: int = 26

    # Messaging
    sms_transport: str = "log_only"  # "log_only" | "disabled"
    email_api_url: str = "https://api.resend.com/emails"
    email_api_key: str | None = None
    email_from: str = "Study Platform <noreply@resend.dev>"
    email_timeout_seconds: float = 10.0
    send_max_attempts: int = 3

    # Reminder batch
    reminder_workers: int = 4
    reminder_cron_hour: int = 14
    reminder_cron_minute: int = 0
    cron_secret: str | None = None
    reminders_api_url: str = "http://localhost:8000"  # API that owns the store; the worker calls its /reminders/run
    reminder_run_timeout_seconds: float = 300.0

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False

    # Redis / Celery
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/0"

    # Logging
    log_level: str = "INFO"
    log_redact_contacts: bool = True  # mask email / phone values in log events

    @field_validator("sms_transport")
    @classmethod
    def _check_sms_transport(cls, value: str) -> str:
        value = value.lower()
        if value not in {"log_only", "disabled"}:
            raise ValueError("sms_transport must be 'log_only' or 'disabled'")
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.local_timezone)


settings = Settings()
