"""Runtime configuration for panelauth.

Settings come from environment variables prefixed with ``PANELAUTH_`` (or a
``.env`` file in the working directory).  Protocol lifetimes and the API key
format are fixed constants in their own modules and are deliberately not
configurable here.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_database_url() -> str:
    data_dir = Path(os.getenv("PANELAUTH_DATA_DIR", "./data")).resolve()
    return f"sqlite:///{data_dir / 'panelauth.db'}"


class Settings(BaseSettings):
    """Application settings loaded from the environment."""

    model_config = SettingsConfigDict(
        env_prefix="PANELAUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = Field(
        default_factory=_default_database_url,
        description="SQLAlchemy URL for the user directory and API keys",
    )
    credential_backend: Literal["memory", "database"] = Field(
        default="memory",
        description="Where codes, tokens and sessions live",
    )
    base_url: str | None = Field(
        default=None,
        description="Public origin used as issuer in discovery metadata",
    )
    login_url: str = Field(
        default="/auth/login",
        description="Login page that receives ?return_to= when no session exists",
    )
    session_cookie_name: str = Field(default="panel_session")
    session_ttl_seconds: int = Field(default=86400, ge=60)
    oauth_clients_file: Path | None = Field(
        default=None,
        description="JSON file with the OAuth client table (replaces the built-in one)",
    )
    max_active_api_keys: int = Field(default=10, ge=1)
    cors_allowed_origins: list[str] = Field(default_factory=list)
    log_level: str = Field(default="INFO")

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str | None) -> str | None:
        return v.rstrip("/") if v else v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def reset_settings() -> None:
    """Drop the cached settings (for testing)."""
    get_settings.cache_clear()
