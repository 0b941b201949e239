"""Client configuration using pydantic-settings."""

from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment variables (``ADVISOR_*``)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ADVISOR_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Advisor Chat"
    log_level: str = "info"

    # Advisory backend
    api_url: str = "http://localhost:8000"
    http_timeout: float = 30.0
    connect_timeout: float = 10.0
    # No limit by default; a hung stream then waits for the remote close.
    stream_timeout: Optional[float] = None

    # Chat
    history_window: int = 10
    fallback_mode: Literal["static", "keyword"] = "static"

    # Upload / task polling
    backoff_base: float = 1.0
    upload_max_retries: int = 3
    upload_backoff_cap: float = 5.0
    poll_max_attempts: int = 40
    poll_backoff_cap: float = 10.0

    # Storage
    storage_backend: Literal["mongo", "memory"] = "mongo"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "advisor"

    # Identity used by the terminal front-end
    user_id: Optional[str] = None

    @property
    def chat_url(self) -> str:
        """Socket URL of the chat endpoint (scheme upgraded from ``api_url``)."""
        base = self.api_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://") :]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://") :]
        return base + "/chat"


settings = Settings()


def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return settings
