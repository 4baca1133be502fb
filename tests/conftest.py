"""Shared fixtures: an in-memory jobs repository and an app client wired to it."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import replace

import pytest
from httpx import ASGITransport, AsyncClient

from job_runner.api.deps import get_execute_rate_limiter, get_jobs_repo, get_registry
from job_runner.config import Settings, get_settings
from job_runner.core.rate_limit import FixedWindowRateLimiter
from job_runner.jobs.executors import build_default_registry
from job_runner.jobs.registry import ExecutorRegistry
from job_runner.main import app
from tests.fakes import TEST_SECRET, InMemoryJobsRepository


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def jobs_repo() -> InMemoryJobsRepository:
  return InMemoryJobsRepository()


@pytest.fixture
def registry() -> ExecutorRegistry:
  return build_default_registry()


@pytest.fixture
def settings() -> Settings:
  # Bypass the process cache so each test sees a clean, explicit configuration.
  return replace(get_settings.__wrapped__(), job_runner_secret=TEST_SECRET, rate_limit_max_requests=10, rate_limit_window_seconds=60, trust_proxy_headers=False)


@pytest.fixture
def rate_limiter(settings: Settings) -> FixedWindowRateLimiter:
  return FixedWindowRateLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_seconds)


@pytest.fixture
async def async_client(jobs_repo: InMemoryJobsRepository, registry: ExecutorRegistry, settings: Settings, rate_limiter: FixedWindowRateLimiter) -> AsyncIterator[AsyncClient]:
  app.dependency_overrides[get_jobs_repo] = lambda: jobs_repo
  app.dependency_overrides[get_registry] = lambda: registry
  app.dependency_overrides[get_settings] = lambda: settings
  app.dependency_overrides[get_execute_rate_limiter] = lambda: rate_limiter
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()
