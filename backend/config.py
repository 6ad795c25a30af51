from datetime import timedelta
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    telegram_bot_token: str = ""
    # Empty → long polling; otherwise the public HTTPS URL of /telegram/webhook
    telegram_webhook_url: str = ""
    telegram_webhook_secret: str = ""
    # "local" keeps sessions in-process (single instance only)
    session_backend: Literal["local", "firestore"] = "local"
    firestore_collection: str = "chats"
    google_cloud_project: str = ""
    firestore_emulator_host: Optional[str] = None
    debounce_seconds: float = 2.0
    message_lifetime_hours: float = 24.0
    lease_ttl_seconds: float = 60.0
    lease_poll_seconds: float = 0.2
    lease_acquire_timeout_seconds: float = 120.0
    debug: bool = False

    # Pydantic v2 style (replaces deprecated inner class Config)
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()


class BotConfig(BaseModel):
    """
    Immutable per-process bot configuration.
    Passed explicitly to the game master, the transport and the renderers
    instead of being read from module globals.
    """

    model_config = ConfigDict(frozen=True)

    username: str = ""
    join_label: str = "Join"
    leave_label: str = "Leave"
    begin_label: str = "Begin"
    debounce: timedelta = timedelta(seconds=2)
    message_lifetime: timedelta = timedelta(hours=24)

    @classmethod
    def from_settings(cls, s: Settings, username: str) -> "BotConfig":
        return cls(
            username=username,
            debounce=timedelta(seconds=s.debounce_seconds),
            message_lifetime=timedelta(hours=s.message_lifetime_hours),
        )
