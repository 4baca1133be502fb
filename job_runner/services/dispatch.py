"""Reference scheduler: claim pending jobs and trigger the execute endpoint for each."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from urllib.parse import quote

import httpx

from job_runner.core.security import WORKER_SECRET_HEADER
from job_runner.jobs.models import JobRecord
from job_runner.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchOutcome:
  """What happened when one claimed job was sent to the execute endpoint."""

  job_id: str
  status_code: int | None
  skipped: bool = False
  error: str | None = None

  @property
  def ok(self) -> bool:
    return self.status_code == 200


def execute_url(api_url: str, job_id: str) -> str:
  return f"{api_url.rstrip('/')}/jobs/{quote(job_id, safe='')}/execute"


async def dispatch_job(client: httpx.AsyncClient, job_id: str, *, api_url: str, secret: str, timeout: float) -> DispatchOutcome:
  """POST one execute call; failures are reported, never raised."""
  url = execute_url(api_url, job_id)
  try:
    response = await client.post(url, headers={WORKER_SECRET_HEADER: secret}, timeout=timeout)
  except httpx.RequestError as exc:
    logger.error("Failed to dispatch job %s to %s: %s", job_id, url, exc)
    return DispatchOutcome(job_id=job_id, status_code=None, error=type(exc).__name__)

  if response.status_code != 200:
    logger.error("Execute call for job %s returned %s", job_id, response.status_code)
    return DispatchOutcome(job_id=job_id, status_code=response.status_code, error=_response_message(response))

  skipped = bool(_response_json(response).get("skipped"))
  if skipped:
    logger.info("Execute call for job %s was skipped by the service", job_id)
  return DispatchOutcome(job_id=job_id, status_code=200, skipped=skipped)


def timeout_message(older_than: timedelta) -> str:
  seconds = int(older_than.total_seconds())
  if seconds >= 60 and seconds % 60 == 0:
    return f"Job timed out after {seconds // 60} minutes"
  return f"Job timed out after {seconds} seconds"


async def fail_stuck_jobs(jobs_repo: JobsRepository, *, older_than: timedelta) -> list[JobRecord]:
  """Fail jobs whose executor never reported back, freeing their dedupe keys."""
  message = timeout_message(older_than)
  failed = await jobs_repo.fail_stuck_jobs(older_than=older_than, error_message=message)
  for record in failed:
    logger.warning("Failed stuck job %s type=%s started_at=%s: %s", record.id, record.job_type, record.started_at, message)
    try:
      await jobs_repo.append_event(job_id=record.id, event_type="job.failed", message=f"Job failed: {record.job_type}", payload={"error": message})
    except Exception:  # noqa: BLE001
      logger.warning("Failed to record job.failed event for stuck job %s", record.id, exc_info=True)
  return failed


async def claim_and_dispatch(
  jobs_repo: JobsRepository,
  client: httpx.AsyncClient,
  *,
  api_url: str,
  secret: str,
  limit: int = 1,
  timeout: float = 1800.0,
  stuck_after: timedelta | None = timedelta(minutes=30),
) -> list[DispatchOutcome]:
  """Fail stuck jobs, then claim up to ``limit`` pending jobs and execute them one at a time."""
  if not secret:
    raise RuntimeError("JOB_RUNNER_SECRET must be set to dispatch jobs.")
  if stuck_after is not None:
    await fail_stuck_jobs(jobs_repo, older_than=stuck_after)
  claimed = await jobs_repo.claim_pending_jobs(limit=limit)
  if not claimed:
    logger.info("No pending jobs to dispatch")
    return []

  logger.info("Claimed %d pending job(s): %s", len(claimed), ", ".join(record.id for record in claimed))
  outcomes: list[DispatchOutcome] = []
  for record in claimed:
    outcomes.append(await dispatch_job(client, record.id, api_url=api_url, secret=secret, timeout=timeout))
  return outcomes


def _response_json(response: httpx.Response) -> dict:
  try:
    body = response.json()
  except ValueError:
    return {}
  return body if isinstance(body, dict) else {}


def _response_message(response: httpx.Response) -> str:
  message = _response_json(response).get("message")
  return str(message) if message else f"HTTP {response.status_code}"
