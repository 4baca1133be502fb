"""End-to-end tests for POST /jobs/{id}/execute."""

from __future__ import annotations

from dataclasses import replace

import pytest
from httpx import AsyncClient

from job_runner.api.deps import get_execute_rate_limiter, get_registry
from job_runner.config import Settings, get_settings
from job_runner.core.rate_limit import FixedWindowRateLimiter
from job_runner.main import app
from tests.fakes import TEST_SECRET, InMemoryJobsRepository, SpyExecutor, echo_registry, make_record

AUTH = {"X-Job-Runner-Secret": TEST_SECRET}


@pytest.mark.anyio
async def test_created_job_runs_to_completion_after_claim(async_client: AsyncClient, jobs_repo: InMemoryJobsRepository) -> None:
  created = await async_client.post("/jobs", json={"jobType": "echo", "payload": {"msg": "hi"}})
  assert created.status_code == 201
  job_id = created.json()["data"]["id"]

  # Simulate the scheduler's claim.
  claimed = await jobs_repo.claim_pending_jobs(limit=1)
  assert [record.id for record in claimed] == [job_id]

  response = await async_client.post(f"/jobs/{job_id}/execute", headers=AUTH)

  assert response.status_code == 200
  assert response.json() == {"success": True, "skipped": False, "data": {"id": job_id, "status": "completed", "result": {"msg": "hi"}}, "message": "Job executed successfully"}
  assert response.headers["x-ratelimit-limit"] == "10"
  assert response.headers["x-ratelimit-remaining"] == "9"
  assert "x-request-id" in response.headers

  fetched = (await async_client.get(f"/jobs/{job_id}")).json()["data"]
  assert fetched["status"] == "completed"
  assert fetched["result"] == {"msg": "hi"}
  assert fetched["startedAt"] <= fetched["completedAt"]


@pytest.mark.anyio
async def test_pending_job_is_acknowledged_without_running(async_client: AsyncClient, jobs_repo: InMemoryJobsRepository) -> None:
  spy = SpyExecutor()
  app.dependency_overrides[get_registry] = lambda: echo_registry(spy)
  jobs_repo.seed(make_record("job-pending", status="pending"))

  response = await async_client.post("/jobs/job-pending/execute", headers=AUTH)

  assert response.status_code == 200
  body = response.json()
  assert body["success"] is True
  assert body["skipped"] is True
  assert body["data"] == {"id": "job-pending", "status": "pending", "result": None}
  assert "processing" in body["message"]
  assert spy.calls == 0
  assert jobs_repo.jobs["job-pending"].status == "pending"


@pytest.mark.anyio
async def test_executor_failure_returns_generic_500_and_records_error(async_client: AsyncClient, jobs_repo: InMemoryJobsRepository) -> None:
  app.dependency_overrides[get_registry] = lambda: echo_registry(SpyExecutor(error=Exception("boom")))
  jobs_repo.seed(make_record("job-boom", status="processing"))

  response = await async_client.post("/jobs/job-boom/execute", headers=AUTH)

  assert response.status_code == 500
  body = response.json()
  assert body["success"] is False
  assert body["message"] == "Job execution failed"
  assert "boom" not in response.text
  assert body["requestId"] == response.headers["x-request-id"]
  assert jobs_repo.jobs["job-boom"].status == "failed"
  assert "boom" in jobs_repo.jobs["job-boom"].error_message


@pytest.mark.anyio
@pytest.mark.parametrize("headers", [{}, {"X-Job-Runner-Secret": "wrong"}, {"X-Job-Runner-Secret": TEST_SECRET + "x"}])
async def test_bad_or_missing_secret_is_rejected_before_touching_the_job(async_client: AsyncClient, jobs_repo: InMemoryJobsRepository, headers: dict[str, str]) -> None:
  spy = SpyExecutor()
  app.dependency_overrides[get_registry] = lambda: echo_registry(spy)
  jobs_repo.seed(make_record("job-1", status="processing"))

  response = await async_client.post("/jobs/job-1/execute", headers=headers)

  assert response.status_code == 401
  assert response.json()["success"] is False
  assert spy.calls == 0
  assert jobs_repo.jobs["job-1"].execution_lease is None


@pytest.mark.anyio
async def test_unknown_job_with_bad_secret_does_not_reveal_existence(async_client: AsyncClient) -> None:
  response = await async_client.post("/jobs/does-not-exist/execute", headers={"X-Job-Runner-Secret": "wrong"})
  assert response.status_code == 401


@pytest.mark.anyio
async def test_unknown_job_with_valid_secret_is_not_found(async_client: AsyncClient) -> None:
  response = await async_client.post("/jobs/does-not-exist/execute", headers=AUTH)
  assert response.status_code == 404
  assert response.json()["message"] == "Job not found"


@pytest.mark.anyio
async def test_unconfigured_secret_fails_closed(async_client: AsyncClient, settings: Settings, jobs_repo: InMemoryJobsRepository) -> None:
  app.dependency_overrides[get_settings] = lambda: replace(settings, job_runner_secret=None)
  jobs_repo.seed(make_record("job-1", status="processing"))

  response = await async_client.post("/jobs/job-1/execute", headers=AUTH)

  assert response.status_code == 500
  assert response.json()["message"] == "Job runner not configured"
  assert jobs_repo.jobs["job-1"].status == "processing"


@pytest.mark.anyio
async def test_blank_job_id_is_rejected(async_client: AsyncClient) -> None:
  response = await async_client.post("/jobs/%20%20/execute", headers=AUTH)
  assert response.status_code == 400
  assert response.json()["message"] == "Job ID is required"


@pytest.mark.anyio
async def test_rate_limit_rejects_exactly_the_extra_request(async_client: AsyncClient) -> None:
  limiter = FixedWindowRateLimiter(3, 60)
  app.dependency_overrides[get_execute_rate_limiter] = lambda: limiter

  responses = [await async_client.post("/jobs/job-1/execute") for _ in range(4)]
  statuses = [response.status_code for response in responses]

  assert statuses == [401, 401, 401, 429]
  assert statuses.count(429) == 1
  assert [response.headers["x-ratelimit-remaining"] for response in responses] == ["2", "1", "0", "0"]

  limited = await async_client.post("/jobs/job-1/execute")
  assert limited.status_code == 429
  assert int(limited.headers["retry-after"]) >= 1
  assert limited.headers["x-ratelimit-remaining"] == "0"
  assert limited.json()["success"] is False


@pytest.mark.anyio
async def test_rate_limit_keys_by_client_address(async_client: AsyncClient, settings: Settings) -> None:
  limiter = FixedWindowRateLimiter(1, 60)
  app.dependency_overrides[get_execute_rate_limiter] = lambda: limiter
  app.dependency_overrides[get_settings] = lambda: replace(settings, trust_proxy_headers=True)

  first = await async_client.post("/jobs/job-1/execute", headers={"X-Forwarded-For": "203.0.113.1"})
  second = await async_client.post("/jobs/job-1/execute", headers={"X-Forwarded-For": "203.0.113.1"})
  other = await async_client.post("/jobs/job-1/execute", headers={"X-Forwarded-For": "203.0.113.2"})

  assert [first.status_code, second.status_code, other.status_code] == [401, 429, 401]
