"""Centralized configuration for the soul registry.

Uses Pydantic BaseSettings with environment variable loading and validation.
Every setting can be supplied as a ``SOUL_*`` environment variable, e.g.
``SOUL_DATABASE_PATH=/var/lib/soul/registry.db``.
"""
from __future__ import annotations

import datetime
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RegistrySettings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_prefix="SOUL_", case_sensitive=False)

    # Storage
    database_path: str = Field(
        default="registry.db", description="SQLite database path, or :memory:"
    )

    # Server
    host: str = Field(default="0.0.0.0", description="Server bind host")  # noqa: S104
    port: int = Field(default=3000, ge=1, le=65535, description="Server bind port")
    public_base_url: Optional[str] = Field(
        default=None, description="Base URL advertised in registration responses"
    )

    # Protocol
    challenge_ttl_seconds: int = Field(
        default=300, ge=1, description="Lifetime of a verification challenge"
    )
    freshness_window_seconds: int = Field(
        default=300, ge=1, description="Maximum age of a signed update timestamp"
    )
    sweep_interval_seconds: float = Field(
        default=60.0, gt=0, description="Interval between expired-challenge sweeps"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Python log level")
    log_format: str = Field(default="text", description="Log format: text or json")
    audit_log_path: Optional[str] = Field(
        default=None, description="JSONL audit trail path (disabled when unset)"
    )

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level {value!r}")
        return value

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("text", "json"):
            raise ValueError("log_format must be 'text' or 'json'")
        return value

    @property
    def challenge_ttl(self) -> datetime.timedelta:
        return datetime.timedelta(seconds=self.challenge_ttl_seconds)

    @property
    def freshness_window(self) -> datetime.timedelta:
        return datetime.timedelta(seconds=self.freshness_window_seconds)


@lru_cache(maxsize=1)
def get_settings() -> RegistrySettings:
    """Return the process-wide settings, read from the environment once."""
    return RegistrySettings()


__all__ = ["RegistrySettings", "get_settings"]
