"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Linework service."""

  environment: str
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  asset_bucket: str
  gcs_storage_host: str | None
  gcp_project_id: str | None
  gemini_api_key: str | None
  planner_model: str
  safety_model: str
  replicate_api_token: str | None
  flux_lora_model: str | None
  download_timeout_seconds: float
  task_secret: str | None
  batch_size: int
  max_item_retries: int
  generator_max_retries: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _parse_positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("LINEWORK_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("LINEWORK_DEBUG"))

  log_max_bytes = _parse_positive_int("LINEWORK_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("LINEWORK_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("LINEWORK_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Batch size bounds concurrent calls against the synthesis service.
  batch_size = _parse_positive_int("LINEWORK_BATCH_SIZE", "3")

  max_item_retries = int(os.getenv("LINEWORK_MAX_ITEM_RETRIES", "2"))
  if max_item_retries < 0:
    raise ValueError("LINEWORK_MAX_ITEM_RETRIES must be zero or a positive integer.")

  generator_max_retries = int(os.getenv("LINEWORK_GENERATOR_MAX_RETRIES", "2"))
  if generator_max_retries < 0 or generator_max_retries > 10:
    raise ValueError("LINEWORK_GENERATOR_MAX_RETRIES must be between 0 and 10.")

  download_timeout_seconds = float(os.getenv("LINEWORK_DOWNLOAD_TIMEOUT_SECONDS", "60"))
  if download_timeout_seconds <= 0:
    raise ValueError("LINEWORK_DOWNLOAD_TIMEOUT_SECONDS must be positive.")

  return Settings(
    environment=environment,
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("LINEWORK_LOG_HTTP_4XX")),
    pg_dsn=os.getenv("LINEWORK_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_parse_positive_int("LINEWORK_PG_CONNECT_TIMEOUT", "5"),
    asset_bucket=os.getenv("LINEWORK_ASSET_BUCKET", "linework-assets"),
    gcs_storage_host=_optional_str(os.getenv("GCS_STORAGE_HOST")),
    gcp_project_id=_optional_str(os.getenv("GCP_PROJECT_ID")),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    planner_model=os.getenv("LINEWORK_PLANNER_MODEL", "gemini-2.5-flash"),
    safety_model=os.getenv("LINEWORK_SAFETY_MODEL", "gemini-2.5-flash"),
    replicate_api_token=_optional_str(os.getenv("REPLICATE_API_TOKEN")),
    flux_lora_model=_optional_str(os.getenv("LINEWORK_FLUX_LORA_MODEL")),
    download_timeout_seconds=download_timeout_seconds,
    task_secret=_optional_str(os.getenv("LINEWORK_TASK_SECRET")),
    batch_size=batch_size,
    max_item_retries=max_item_retries,
    generator_max_retries=generator_max_retries,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration."""
  # Keep database configuration isolated so migrations and offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("LINEWORK_DEBUG"))
  pg_connect_timeout = int(os.getenv("LINEWORK_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("LINEWORK_PG_CONNECT_TIMEOUT must be a positive integer.")

  # Support fallback to DATABASE_URL for backward compatibility
  pg_dsn = os.getenv("LINEWORK_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
