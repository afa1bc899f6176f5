"""Application configuration loaded from environment variables."""

from __future__ import annotations

import functools

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Chatter backend settings.

    Every field has a default so the server starts without a ``.env`` file;
    override via environment variables (case-insensitive field names).
    """

    database_url: str = "sqlite:///chatter.db"
    cors_origins: str = "http://localhost:5173"
    session_duration_days: int = 7
    secure_cookies: bool = False
    log_level: str = "INFO"

    # Realtime layer
    superadmin_username: str = "superadmin"
    # One live connection per user: the newest connection replaces the
    # registry entry and older tabs stop receiving per-user pushes.
    # Set to False to fan out to every open connection of a user.
    single_connection_per_user: bool = True
    heartbeat_interval: float = 30.0

    # Messages
    max_message_length: int = 10_000
    default_history_limit: int = 50

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@functools.lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance (singleton)."""
    return Settings()
