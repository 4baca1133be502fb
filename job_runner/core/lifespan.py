import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from job_runner.config import get_settings
from job_runner.core.database import dispose_engine
from job_runner.core.logging import _initialize_logging
from job_runner.core.rate_limit import FixedWindowRateLimiter
from job_runner.jobs.executors import build_default_registry
from job_runner.storage.factory import _get_jobs_repo


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Wire process-wide collaborators into app state and release them on shutdown."""
  settings = get_settings()
  logger = logging.getLogger("job_runner.core.lifespan")

  try:
    _initialize_logging(settings)
  except RuntimeError:
    # Keep serving with the default handlers rather than refusing to start.
    logger.warning("Logging setup failed; falling back to default handlers.", exc_info=True)

  # A missing executor or database DSN is a deployment error, so let it abort startup.
  app.state.registry = build_default_registry()
  app.state.jobs_repo = _get_jobs_repo(settings)
  app.state.execute_rate_limiter = FixedWindowRateLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_seconds)
  logger.info(
    "Startup complete env=%s database=%s execute_rate_limit=%s/%ss worker_secret_configured=%s",
    settings.environment,
    _redact_dsn(settings.pg_dsn),
    settings.rate_limit_max_requests,
    settings.rate_limit_window_seconds,
    bool(settings.job_runner_secret),
  )
  if not settings.job_runner_secret:
    logger.warning("JOB_RUNNER_SECRET is not set; the execute endpoint will reject every call.")

  try:
    yield
  finally:
    await dispose_engine()
    logger.info("Database engine disposed.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
