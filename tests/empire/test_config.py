"""
Tests for empire.config.

Covers:
- Loading settings from EMPIRE_* environment variables
- CORS origin and flag parsing
- Fail-fast validation (missing secrets, production wildcard CORS)
- Anon and service store configurations
"""

from __future__ import annotations

import pytest

from empire.config import Settings, load_settings, validate_settings
from empire.lib.exceptions import ConfigurationError
from empire.store.client import StoreRole


class TestLoadSettings:
    """Settings come from the environment."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("EMPIRE_DATABASE_URL", "EMPIRE_CORS_ORIGINS", "EMPIRE_HIGHLIGHT_POINTS"):
            monkeypatch.delenv(name, raising=False)
        settings = load_settings()

        assert settings.DATABASE_URL == "sqlite:///./empire.db"
        assert settings.CORS_ORIGINS == []
        assert settings.HIGHLIGHT_POINTS == 10
        assert settings.QUERY_CACHE_TTL == 15
        assert settings.JWT_AUDIENCE == "authenticated"

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EMPIRE_DATABASE_URL", "postgresql+psycopg://db/empire")
        monkeypatch.setenv("EMPIRE_ANON_KEY", "anon-key")
        monkeypatch.setenv("EMPIRE_CORS_ORIGINS", "http://a.test, http://b.test ,")
        monkeypatch.setenv("EMPIRE_DEV_MODE", "true")
        monkeypatch.setenv("EMPIRE_HIGHLIGHT_POINTS", "25")

        settings = load_settings()

        assert settings.DATABASE_URL == "postgresql+psycopg://db/empire"
        assert settings.ANON_KEY == "anon-key"
        assert settings.CORS_ORIGINS == ["http://a.test", "http://b.test"]
        assert settings.DEV_MODE is True
        assert settings.HIGHLIGHT_POINTS == 25


class TestValidateSettings:
    """validate_settings fails fast on unsafe configurations."""

    def test_missing_jwt_secret_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="EMPIRE_JWT_SECRET"):
            validate_settings(Settings(JWT_SECRET="", DEV_MODE=False))

    def test_missing_jwt_secret_allowed_in_dev_mode(self) -> None:
        validate_settings(Settings(JWT_SECRET="", DEV_MODE=True))

    def test_production_requires_anon_key(self) -> None:
        settings = Settings(JWT_SECRET="s", ENVIRONMENT="production")
        with pytest.raises(ConfigurationError, match="EMPIRE_ANON_KEY"):
            validate_settings(settings)

    def test_production_rejects_wildcard_cors(self) -> None:
        settings = Settings(
            JWT_SECRET="s",
            ANON_KEY="k",
            ENVIRONMENT="production",
            CORS_ORIGINS="*",
        )
        with pytest.raises(ConfigurationError, match="wildcard"):
            validate_settings(settings)

    def test_valid_production_settings(self) -> None:
        settings = Settings(
            JWT_SECRET="s",
            ANON_KEY="k",
            ENVIRONMENT="production",
            CORS_ORIGINS=["https://empire.test"],
        )
        validate_settings(settings)
        assert settings.is_production


class TestStoreConfigs:
    """The two store contexts."""

    def test_anon_store_config(self) -> None:
        settings = Settings(DATABASE_URL="sqlite:///:memory:", ANON_KEY="anon")
        config = settings.anon_store_config()

        assert config.role is StoreRole.ANON
        assert config.key == "anon"
        assert config.is_in_memory

    def test_service_store_config_requires_key(self) -> None:
        with pytest.raises(ConfigurationError):
            Settings().service_store_config()

    def test_service_store_config_prefers_service_url(self) -> None:
        settings = Settings(
            DATABASE_URL="sqlite:///:memory:",
            SERVICE_DATABASE_URL="sqlite:///./admin.db",
            SERVICE_ROLE_KEY="service",
        )
        config = settings.service_store_config()

        assert config.role is StoreRole.SERVICE
        assert config.url == "sqlite:///./admin.db"
        assert config.key == "service"
