"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from job_runner.utils.env import load_env_file, resolve_env_path

load_env_file(resolve_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the job runner service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  job_runner_secret: str | None
  rate_limit_max_requests: int
  rate_limit_window_seconds: int
  trust_proxy_headers: bool
  log_dir: str | None
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  api_url: str | None
  execute_timeout_seconds: int
  stuck_job_timeout_seconds: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ()

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if "*" in origins:
    raise ValueError("JOB_RUNNER_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _parse_positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("JOB_RUNNER_ENV", "development").lower()
  debug = _parse_bool(os.getenv("JOB_RUNNER_DEBUG"))

  rate_limit_max_requests = _parse_positive_int("JOB_RUNNER_RATE_LIMIT_MAX_REQUESTS", "10")
  rate_limit_window_seconds = _parse_positive_int("JOB_RUNNER_RATE_LIMIT_WINDOW_SECONDS", "60")

  log_max_bytes = _parse_positive_int("JOB_RUNNER_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("JOB_RUNNER_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("JOB_RUNNER_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # The scheduler waits on synchronous executions, so keep a generous default deadline.
  execute_timeout_seconds = _parse_positive_int("JOB_RUNNER_EXECUTE_TIMEOUT_SECONDS", "1800")
  # Processing rows older than this are failed by the scheduler before it claims new work.
  stuck_job_timeout_seconds = _parse_positive_int("JOB_RUNNER_STUCK_JOB_TIMEOUT_SECONDS", "1800")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("JOB_RUNNER_ALLOWED_ORIGINS")),
    # Read without a default: an unset secret must keep the execution endpoint closed.
    job_runner_secret=_optional_str(os.getenv("JOB_RUNNER_SECRET")),
    rate_limit_max_requests=rate_limit_max_requests,
    rate_limit_window_seconds=rate_limit_window_seconds,
    trust_proxy_headers=_parse_bool(os.getenv("JOB_RUNNER_TRUST_PROXY_HEADERS")),
    log_dir=_optional_str(os.getenv("JOB_RUNNER_LOG_DIR")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("JOB_RUNNER_LOG_HTTP_4XX")),
    pg_dsn=os.getenv("JOB_RUNNER_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_parse_positive_int("JOB_RUNNER_PG_CONNECT_TIMEOUT", "5"),
    api_url=_optional_str(os.getenv("JOB_RUNNER_API_URL")),
    execute_timeout_seconds=execute_timeout_seconds,
    stuck_job_timeout_seconds=stuck_job_timeout_seconds,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration."""
  # Keep database configuration isolated so migrations and scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("JOB_RUNNER_DEBUG"))
  pg_connect_timeout = _parse_positive_int("JOB_RUNNER_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = os.getenv("JOB_RUNNER_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
