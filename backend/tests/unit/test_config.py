"""Tests for configuration module."""

import pytest
from pydantic import ValidationError

from app.core.config import DatabaseSettings, IngestSettings, Settings, get_settings


class TestSettings:
    """Test Settings configuration."""

    def test_default_settings(self):
        """Test default settings values."""
        settings = Settings()
        assert settings.app_name == "Modality Ingest"
        assert settings.app_version == "1.0.0"
        assert settings.environment == "development"

    def test_ingest_settings(self):
        """Test ingest defaults."""
        settings = IngestSettings()
        assert settings.default_modality == "OT"
        assert settings.name_delimiter == "^"
        assert settings.study_uid_prefix == "STUDY"
        assert settings.default_instance_number == 1
        assert settings.report_impression == "Report pending"
        assert settings.report_technique.format(modality="CT") == "CT imaging performed"

    def test_ingest_settings_from_env(self, monkeypatch):
        """Test ingest settings read the INGEST_ prefix."""
        monkeypatch.setenv("INGEST_DEFAULT_MODALITY", "XR")
        monkeypatch.setenv("INGEST_NOTIFY_ON_NEW_CONTENT", "false")
        settings = IngestSettings()
        assert settings.default_modality == "XR"
        assert settings.notify_on_new_content is False

    def test_database_url_from_parts(self, monkeypatch):
        """Test URL assembled from individual parts."""
        monkeypatch.delenv("DB_URL", raising=False)
        database = DatabaseSettings(user="u", password="p", host="db", port=5433, name="n")
        assert database.url == "postgresql+asyncpg://u:p@db:5433/n"
        assert database.is_sqlite is False

    def test_database_url_override(self):
        """Test explicit URL takes precedence."""
        database = DatabaseSettings(url_override="sqlite+aiosqlite:///./ingest.db")
        assert database.url == "sqlite+aiosqlite:///./ingest.db"
        assert database.is_sqlite is True

    def test_debug_rejected_in_production(self):
        """Test debug mode is refused in production."""
        with pytest.raises(ValidationError):
            Settings(environment="production", debug=True)

    def test_get_settings_cached(self):
        """Test settings are cached."""
        settings1 = get_settings()
        settings2 = get_settings()
        assert settings1 is settings2


class TestLoggingSettings:
    """Test derived logging settings."""

    def test_logging_follows_environment(self):
        settings = Settings(environment="staging", debug=True)
        assert settings.log_level == "DEBUG"
        assert settings.json_logs is False

        settings = Settings(environment="production")
        assert settings.log_level == "INFO"
        assert settings.json_logs is True

    def test_explicit_logging_wins(self):
        settings = Settings(environment="production", log_level="WARNING", json_logs=False)
        assert settings.log_level == "WARNING"
        assert settings.json_logs is False
