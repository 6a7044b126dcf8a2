"""Application configuration management using Pydantic Settings.

This module provides centralized configuration for the Modality Ingest backend,
supporting environment variables and .env files for different deployment environments.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Get the backend directory (parent of app/ directory)
BACKEND_DIR = Path(__file__).parent.parent.parent
ENV_FILE = BACKEND_DIR / ".env"

# Load environment variables from .env file
load_dotenv(ENV_FILE)


class DatabaseSettings(BaseSettings):
    """Database configuration settings."""

    model_config = SettingsConfigDict(env_prefix="DB_", populate_by_name=True)

    driver: str = Field(default="postgresql+asyncpg", description="Database driver")
    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    user: str = Field(default="modality", description="Database user")
    password: str = Field(default="", description="Database password")
    name: str = Field(default="modality_ingest", description="Database name")
    pool_size: int = Field(default=10, ge=1, le=100, description="Connection pool size")
    max_overflow: int = Field(default=20, ge=0, le=100, description="Max pool overflow")
    url_override: str | None = Field(
        default=None,
        validation_alias="DB_URL",
        description="Full SQLAlchemy URL, takes precedence over the individual parts",
    )

    @property
    def url(self) -> str:
        """Get database connection URL."""
        if self.url_override:
            return self.url_override
        return f"{self.driver}://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"

    @property
    def is_sqlite(self) -> bool:
        """SQLite engines do not accept pool sizing arguments."""
        return self.url.startswith("sqlite")


class IngestSettings(BaseSettings):
    """Defaults applied while normalizing acquisition notifications.

    Incoming payloads are never rejected for missing optional metadata;
    these values fill the gaps.
    """

    model_config = SettingsConfigDict(env_prefix="INGEST_")

    default_modality: str = Field(default="OT", max_length=16, description="Modality sentinel")
    name_delimiter: str = Field(default="^", min_length=1, description="Composite name delimiter")
    unknown_last_name: str = Field(default="Unknown", description="Last name when absent")
    unknown_first_name: str = Field(default="Patient", description="First name when absent")

    study_uid_prefix: str = Field(default="STUDY", description="Prefix of synthesized study UIDs")
    series_uid_suffix: str = Field(
        default=".1", description="Suffix appended to the study UID for derived series UIDs"
    )
    default_instance_number: int = Field(default=1, ge=0)
    default_series_number: int = Field(default=1, ge=0)
    default_transfer_syntax_uid: str = Field(
        default="1.2.840.10008.1.2.1", description="Explicit VR Little Endian"
    )

    # Placeholder report content
    report_impression: str = Field(default="Report pending")
    report_findings: str = Field(default="Images received, awaiting radiologist review")
    report_technique: str = Field(
        default="{modality} imaging performed",
        description="Technique template, formatted with the study modality",
    )
    report_clinical_history: str = Field(default="Clinical history not provided")

    notify_on_new_content: bool = Field(
        default=True, description="Emit the study-content-added event for new studies/images"
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="Modality Ingest", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    workers: int = Field(default=4, ge=1, le=32, description="Number of workers")

    # Logging
    log_level: str | None = Field(
        default=None, description="Log level, DEBUG or INFO by debug flag when unset"
    )
    json_logs: bool | None = Field(
        default=None, description="JSON log lines, on in production when unset"
    )

    # Nested settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    ingest: IngestSettings = Field(default_factory=IngestSettings)

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Validate settings after initialization."""
        if self.environment == "production" and self.debug:
            raise ValueError("Debug mode must be disabled in production (DEBUG=false)")
        if self.log_level is None:
            self.log_level = "DEBUG" if self.debug else "INFO"
        if self.json_logs is None:
            self.json_logs = self.environment == "production"
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
