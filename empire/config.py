"""
Centralized configuration for Empire.

All settings are read from ``EMPIRE_*`` environment variables and validated
by a pydantic model. The store is reached through two distinct
configurations: the public (anonymous key) context used for per-user work,
and the privileged (service-role key) context used for schema management.

Usage:
    from empire.config import load_settings

    settings = load_settings()
    anon = settings.anon_store_config()
    privileged = settings.service_store_config()
"""

from __future__ import annotations

import logging
import os

from pydantic import BaseModel, Field, field_validator

from empire.lib.exceptions import ConfigurationError
from empire.store.client import StoreConfig, StoreRole

logger = logging.getLogger(__name__)

_DEFAULT_DATABASE_URL = "sqlite:///./empire.db"


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Store (public context)
    DATABASE_URL: str = _DEFAULT_DATABASE_URL
    ANON_KEY: str = ""

    # Store (privileged context), server-only
    SERVICE_DATABASE_URL: str = ""
    SERVICE_ROLE_KEY: str = ""

    # Auth provider token verification
    JWT_SECRET: str = ""
    JWT_AUDIENCE: str = "authenticated"

    # Runtime
    ENVIRONMENT: str = "development"
    DEV_MODE: bool = False
    CORS_ORIGINS: list[str] = Field(default_factory=list)
    LOG_LEVEL: str = "INFO"

    # Missions
    HIGHLIGHT_POINTS: int = Field(default=10, ge=0)

    # Query cache freshness window in seconds
    QUERY_CACHE_TTL: int = Field(default=15, ge=0)

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return []

    @field_validator("DEV_MODE", mode="before")
    @classmethod
    def parse_flag(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in {"1", "true", "yes", "on"}

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def anon_store_config(self) -> StoreConfig:
        """Store configuration for the public, per-user context."""
        return StoreConfig(
            url=self.DATABASE_URL,
            key=self.ANON_KEY,
            role=StoreRole.ANON,
        )

    def service_store_config(self) -> StoreConfig:
        """
        Store configuration for the privileged context.

        Raises:
            ConfigurationError: If no service-role key is configured
        """
        if not self.SERVICE_ROLE_KEY:
            raise ConfigurationError(
                "EMPIRE_SERVICE_ROLE_KEY is required for privileged store access."
            )
        return StoreConfig(
            url=self.SERVICE_DATABASE_URL or self.DATABASE_URL,
            key=self.SERVICE_ROLE_KEY,
            role=StoreRole.SERVICE,
        )


def validate_settings(settings: Settings) -> None:
    """
    Fail fast on settings that are unsafe to run with.

    Raises:
        ConfigurationError: If a required secret is missing outside dev mode,
            or if production CORS allows every origin
    """
    missing: list[str] = []

    if not settings.JWT_SECRET:
        if settings.DEV_MODE:
            logger.warning(
                "EMPIRE_JWT_SECRET not set. Every bearer token will be rejected."
            )
        else:
            missing.append("EMPIRE_JWT_SECRET")

    if settings.is_production and not settings.ANON_KEY:
        missing.append("EMPIRE_ANON_KEY")

    if missing:
        raise ConfigurationError(
            f"Missing required settings: {', '.join(missing)}. "
            "Set these environment variables before starting the application."
        )

    if settings.is_production and "*" in settings.CORS_ORIGINS:
        raise ConfigurationError(
            "EMPIRE_CORS_ORIGINS contains wildcard '*' which is forbidden in production. "
            "Specify explicit origins instead."
        )


def load_settings() -> Settings:
    """Load settings from the environment."""
    return Settings(
        DATABASE_URL=os.getenv("EMPIRE_DATABASE_URL", _DEFAULT_DATABASE_URL),
        ANON_KEY=os.getenv("EMPIRE_ANON_KEY", ""),
        SERVICE_DATABASE_URL=os.getenv("EMPIRE_SERVICE_DATABASE_URL", ""),
        SERVICE_ROLE_KEY=os.getenv("EMPIRE_SERVICE_ROLE_KEY", ""),
        JWT_SECRET=os.getenv("EMPIRE_JWT_SECRET", ""),
        JWT_AUDIENCE=os.getenv("EMPIRE_JWT_AUDIENCE", "authenticated"),
        ENVIRONMENT=os.getenv("EMPIRE_ENVIRONMENT", "development"),
        DEV_MODE=os.getenv("EMPIRE_DEV_MODE", "0"),
        CORS_ORIGINS=os.getenv("EMPIRE_CORS_ORIGINS", ""),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        HIGHLIGHT_POINTS=os.getenv("EMPIRE_HIGHLIGHT_POINTS", "10"),
        QUERY_CACHE_TTL=os.getenv("EMPIRE_QUERY_CACHE_TTL", "15"),
    )


__all__ = ["Settings", "load_settings", "validate_settings"]
