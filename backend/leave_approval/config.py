from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Leave Approval Workflow"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "postgresql+asyncpg://leave_approval:leave_approval@db:5432/leave_approval"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    host: str = "0.0.0.0"
    port: int = 8000

    # Workflow timing, copied into every instance's Started event.
    task_queue: str = "leave-request-queue"
    reminder_interval_seconds: int = 86400
    approval_timeout_seconds: int = 3 * 86400

    # Activity retry policy.
    activity_start_to_close_timeout_seconds: float = 60.0
    activity_initial_backoff_seconds: float = 1.0
    activity_max_backoff_seconds: float = 300.0
    activity_max_attempts: int = 0  # 0 = bounded only by the approval deadline

    signal_ack_timeout_seconds: float = 5.0
    default_decided_by: str = "manager@example.com"

    # Retention worker.
    retention_seconds: int = 30 * 86400
    retention_sweep_interval_seconds: int = 3600


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
