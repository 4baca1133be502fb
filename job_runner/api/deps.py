"""Shared FastAPI dependencies resolving process-wide collaborators from app state."""

from __future__ import annotations

from fastapi import Depends, Header, Request

from job_runner.core.rate_limit import FixedWindowRateLimiter
from job_runner.jobs.errors import JobValidationError
from job_runner.jobs.registry import ExecutorRegistry
from job_runner.services.jobs import JobService
from job_runner.storage.jobs_repo import JobsRepository

_MAX_ACTOR_ID_CHARS = 200


def get_registry(request: Request) -> ExecutorRegistry:
  """Return the sealed executor registry built during startup."""
  registry = getattr(request.app.state, "registry", None)
  if registry is None:
    raise RuntimeError("Executor registry not initialized")
  return registry


def get_jobs_repo(request: Request) -> JobsRepository:
  jobs_repo = getattr(request.app.state, "jobs_repo", None)
  if jobs_repo is None:
    raise RuntimeError("Jobs repository not initialized")
  return jobs_repo


def get_job_service(jobs_repo: JobsRepository = Depends(get_jobs_repo), registry: ExecutorRegistry = Depends(get_registry)) -> JobService:  # noqa: B008
  return JobService(jobs_repo, registry)


def get_execute_rate_limiter(request: Request) -> FixedWindowRateLimiter:
  limiter = getattr(request.app.state, "execute_rate_limiter", None)
  if limiter is None:
    raise RuntimeError("Execute rate limiter not initialized")
  return limiter


def get_actor_id(x_actor_id: str | None = Header(default=None, alias="X-Actor-Id")) -> str | None:  # noqa: B008
  """Resolve the caller identity recorded on jobs; admin authentication happens upstream."""
  if x_actor_id is None:
    return None
  actor_id = x_actor_id.strip()
  if not actor_id:
    return None
  if len(actor_id) > _MAX_ACTOR_ID_CHARS:
    raise JobValidationError("X-Actor-Id header is too long")
  return actor_id
