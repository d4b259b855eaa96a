"""Configuration management for the inline expense editor.

Settings come from environment variables with defaults that work out of
the box; nothing needs to be configured for local development.
"""

import os as _os
from pathlib import Path
from typing import Any, Dict


class Config:
    """Base configuration class for organizing application settings."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary.

        Returns:
            Dictionary of all public config attributes
        """
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            Config instance with values from dictionary
        """
        config = cls()
        for key, value in data.items():
            setattr(config, key, value)
        return config


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = _os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


class AppConfig(Config):
    """Application-level configuration loaded from environment variables.

    Environment variables:
        APP_DB_PATH: Path to the SQLite database file (default: expenses.sqlite)
        APP_PORT: Server port (default: 8000)
        APP_HOST: Server bind address (default: 127.0.0.1)
        APP_LOG_FORMAT: Logging format — "text" or "json" (default: text)
        APP_LOG_LEVEL: Root log level name (default: INFO)
        APP_SESSION_TTL: Idle seconds before an editing session expires (default: 1800)
        APP_SESSION_MAX: Max live editing sessions kept in memory (default: 1000)
        APP_TRANSITION_MS: Duration of show transitions in the browser (default: 200)
        APP_NOTIFICATION_LIMIT: Max queued change notifications per session turn (default: 64)
    """

    def __init__(self) -> None:
        super().__init__()
        self.db_path = Path(_os.getenv("APP_DB_PATH", "expenses.sqlite"))
        self.api_port = _env_int("APP_PORT", 8000, minimum=1)
        self.api_host = _os.getenv("APP_HOST", "127.0.0.1")
        self.log_format = _os.getenv("APP_LOG_FORMAT", "text").lower()
        if self.log_format not in ("text", "json"):
            raise ValueError(f"APP_LOG_FORMAT must be 'text' or 'json', got {self.log_format!r}")
        self.log_level = _os.getenv("APP_LOG_LEVEL", "INFO").upper()
        self.session_ttl = _env_int("APP_SESSION_TTL", 1800, minimum=1)
        self.session_max = _env_int("APP_SESSION_MAX", 1000, minimum=1)
        self.transition_ms = _env_int("APP_TRANSITION_MS", 200)
        self.notification_limit = _env_int("APP_NOTIFICATION_LIMIT", 64, minimum=1)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create an AppConfig instance populated from environment variables."""
        return cls()
