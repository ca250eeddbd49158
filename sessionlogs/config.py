"""Configuration management for session tracking."""

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageMode(str, Enum):
    """Supported storage backends."""
    JSON = "json"  # One JSON file per session
    DATABASE = "database"  # SQLAlchemy database (SQLite by default)
    NULL = "null"  # Nothing persisted, summary logged


class Settings(BaseSettings):
    """Tracking settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SESSIONLOGS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Application
    app_name: str = Field(
        default_factory=lambda: Path.cwd().name,
        description="Application name stored with every session"
    )

    # Storage
    storage_mode: StorageMode = Field(StorageMode.JSON, description="Where finished sessions are written")
    logs_dir: str = Field("./logs", description="Directory for the JSON storage backend")
    database_url: str = Field("sqlite:///sessionlogs.sqlite", description="SQLAlchemy URL for the database backend")

    # Delivery
    on_unload: bool = Field(
        False,
        description="Defer all pushes until the page is closed (prompts the user on close)"
    )
    exclude_input_regex: Optional[str] = Field(None, description="Regular expression of input names to skip")
    exclude_input_id: list[str] = Field(default_factory=list, description="Input ids to skip")

    # Identity
    exclude_users: list[str] = Field(default_factory=list, description="Users whose sessions are not stored")
    default_user: Optional[str] = Field(None, description="Identity used when neither session nor environment provide one")
    user_env_var: str = Field("SHINYPROXY_USERNAME", description="Deployment variable holding the user name")

    # Client store
    buffer_quota_bytes: Optional[int] = Field(None, description="Client store quota in bytes (None for unlimited)")

    # Logging
    log_level: str = Field("INFO", description="Log level")
    json_logs: bool = Field(False, description="Render logs as JSON")

    # Server Settings
    server_host: str = Field("0.0.0.0", description="Server host")
    server_port: int = Field(8000, description="Server port")


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
