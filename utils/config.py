"""
Configuration Utility - Environment Variables and Job File

Two layers of configuration:
- Settings: process-level values from the environment/.env (pydantic-settings),
  including overrides for connection credentials.
- AppConfig: cluster, storage and job definitions loaded from a YAML file.

Usage:
    from utils.config import load_config, settings

    config = load_config(settings)
    for job in config.backup_jobs:
        print(job.index_name, job.schedule)
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.errors import ConfigError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Job configuration file
    CONFIG_PATH: str = Field(default="/app/config/config.yaml")

    # Scratch space for run artifacts
    WORK_DIR: str = Field(default="/tmp/opensearch-backups")

    # Execution mode
    RUN_ONCE: bool = Field(default=False)

    # Per-request deadline for index and storage calls (seconds)
    REQUEST_TIMEOUT: float = Field(default=60.0, gt=0)

    # Upload retry policy
    UPLOAD_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    UPLOAD_BASE_DELAY: float = Field(default=2.0, ge=0)

    # OpenSearch overrides
    OPENSEARCH_ADDRESSES: str | None = Field(default=None)
    OPENSEARCH_USERNAME: str | None = Field(default=None)
    OPENSEARCH_PASSWORD: str | None = Field(default=None)
    OPENSEARCH_CERT_PATH: str | None = Field(default=None)

    # S3 overrides
    S3_ENDPOINT: str | None = Field(default=None)
    S3_ACCESS_KEY_ID: str | None = Field(default=None)
    S3_SECRET_ACCESS_KEY: str | None = Field(default=None)
    S3_BUCKET: str | None = Field(default=None)
    S3_REGION: str | None = Field(default=None)
    S3_USE_SSL: bool | None = Field(default=None)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")

    # Application Metadata
    APP_NAME: str = Field(default="opensearch-backup-manager")
    APP_VERSION: str = Field(default="1.0.0")


class OpenSearchConfig(BaseModel):
    """Search cluster connection parameters."""

    model_config = ConfigDict(frozen=True)

    addresses: list[str] = Field(default_factory=lambda: ["https://localhost:9200"])
    username: str = ""
    password: str = ""
    cert_path: str = ""
    timestamp_field: str = "@timestamp"

    @field_validator("addresses")
    @classmethod
    def validate_addresses(cls, v: list[str]) -> list[str]:
        addresses = [a.strip() for a in v if a and a.strip()]
        if not addresses:
            raise ValueError("at least one OpenSearch address is required")
        return addresses


class S3Config(BaseModel):
    """Object storage connection parameters."""

    model_config = ConfigDict(frozen=True)

    endpoint: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    bucket: str = ""
    region: str = ""
    use_ssl: bool = True


class CleanupJob(BaseModel):
    """Purge documents older than retention_days from one index."""

    model_config = ConfigDict(frozen=True)

    index_name: str = Field(..., min_length=1)
    retention_days: int = Field(..., ge=1)
    schedule: str = Field(..., min_length=1, description="Five-field cron expression")

    @property
    def identity(self) -> str:
        return f"cleanup:{self.index_name}"


class BackupJob(BaseModel):
    """Archive the previous day of one index to object storage."""

    model_config = ConfigDict(frozen=True)

    index_name: str = Field(..., min_length=1)
    schedule: str = Field(..., min_length=1, description="Five-field cron expression")
    interval_hours: int = Field(..., ge=1, le=24, description="Window size (2, 4, 6, 24...)")
    s3_path: str = Field(default="", description="Key prefix in the bucket")
    request_interval_seconds: float = Field(default=0, ge=0)

    @property
    def identity(self) -> str:
        return f"backup:{self.index_name}"


class AppConfig(BaseModel):
    """Everything read from the YAML configuration file."""

    model_config = ConfigDict(frozen=True)

    opensearch: OpenSearchConfig = Field(default_factory=OpenSearchConfig)
    s3: S3Config = Field(default_factory=S3Config)
    cleanup_jobs: list[CleanupJob] = Field(default_factory=list)
    backup_jobs: list[BackupJob] = Field(default_factory=list)


def _apply_overrides(raw: dict[str, Any], settings: Settings) -> dict[str, Any]:
    """Merge non-empty environment overrides into the raw YAML mapping."""
    opensearch = dict(raw.get("opensearch") or {})
    s3 = dict(raw.get("s3") or {})

    if settings.OPENSEARCH_ADDRESSES:
        opensearch["addresses"] = [a.strip() for a in settings.OPENSEARCH_ADDRESSES.split(",")]
    if settings.OPENSEARCH_USERNAME:
        opensearch["username"] = settings.OPENSEARCH_USERNAME
    if settings.OPENSEARCH_PASSWORD:
        opensearch["password"] = settings.OPENSEARCH_PASSWORD
    if settings.OPENSEARCH_CERT_PATH:
        opensearch["cert_path"] = settings.OPENSEARCH_CERT_PATH

    if settings.S3_ENDPOINT:
        s3["endpoint"] = settings.S3_ENDPOINT
    if settings.S3_ACCESS_KEY_ID:
        s3["access_key_id"] = settings.S3_ACCESS_KEY_ID
    if settings.S3_SECRET_ACCESS_KEY:
        s3["secret_access_key"] = settings.S3_SECRET_ACCESS_KEY
    if settings.S3_BUCKET:
        s3["bucket"] = settings.S3_BUCKET
    if settings.S3_REGION:
        s3["region"] = settings.S3_REGION
    if settings.S3_USE_SSL is not None:
        s3["use_ssl"] = settings.S3_USE_SSL

    merged = dict(raw)
    merged["opensearch"] = opensearch
    merged["s3"] = s3
    return merged


def load_config(settings: Settings) -> AppConfig:
    """
    Load job and connection configuration from the YAML file.

    Environment overrides from settings take precedence over file values.

    Args:
        settings: Process settings (provides CONFIG_PATH and overrides)

    Returns:
        Validated AppConfig

    Raises:
        ConfigError: If the file cannot be read, parsed or validated
    """
    config_path = Path(settings.CONFIG_PATH)

    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"failed to read config file {config_path}: {e}") from e

    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse config {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"config {config_path} must be a mapping at top level")

    try:
        return AppConfig.model_validate(_apply_overrides(raw, settings))
    except ValidationError as e:
        raise ConfigError(f"invalid config {config_path}: {e}") from e


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
