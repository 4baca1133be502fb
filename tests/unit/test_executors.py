"""Unit tests for the built-in executors."""

from __future__ import annotations

import logging
from datetime import timedelta

import pytest
from pydantic import ValidationError

from job_runner.jobs.executors.echo import EchoPayload, run_echo
from job_runner.jobs.executors.job_report import JobReportPayload, run_job_report
from job_runner.jobs.executors.purge_jobs import PurgeJobsPayload, run_purge_jobs
from job_runner.jobs.models import JobType
from job_runner.jobs.registry import ExecutorContext
from job_runner.utils.clock import to_iso, utc_now
from tests.fakes import InMemoryJobsRepository, make_record


def _context(repo: InMemoryJobsRepository, job_type: JobType) -> ExecutorContext:
  return ExecutorContext(job_id="runner-job", job_type=job_type, jobs_repo=repo, logger=logging.getLogger("tests.executors"))


def _days_ago(days: int) -> str:
  return to_iso(utc_now() - timedelta(days=days))


@pytest.mark.anyio
async def test_echo_returns_its_payload() -> None:
  result = await run_echo(EchoPayload(msg="hi"), _context(InMemoryJobsRepository(), JobType.ECHO))
  assert result == {"msg": "hi"}


def test_echo_payload_is_strict() -> None:
  with pytest.raises(ValidationError):
    EchoPayload.model_validate({"msg": 5})
  with pytest.raises(ValidationError):
    EchoPayload.model_validate({"msg": "hi", "extra": 1})


@pytest.mark.anyio
async def test_purge_jobs_deletes_only_old_terminal_jobs() -> None:
  repo = InMemoryJobsRepository()
  repo.seed(make_record("old-done", status="completed", created_at=_days_ago(40), completed_at=_days_ago(40)))
  repo.seed(make_record("old-failed", status="failed", created_at=_days_ago(40), completed_at=_days_ago(35)))
  repo.seed(make_record("recent-done", status="completed", created_at=_days_ago(2), completed_at=_days_ago(1)))
  repo.seed(make_record("old-pending", status="pending", created_at=_days_ago(50)))
  await repo.append_event(job_id="old-done", event_type="job.completed", message="done")

  result = await run_purge_jobs(PurgeJobsPayload.model_validate({"olderThanDays": 30, "statuses": ["completed"]}), _context(repo, JobType.PURGE_JOBS))

  assert result["deleted"] == 1
  assert result["statuses"] == ["completed"]
  assert set(repo.jobs) == {"old-failed", "recent-done", "old-pending"}
  assert repo.events == []


def test_purge_payload_rejects_non_terminal_statuses() -> None:
  with pytest.raises(ValidationError):
    PurgeJobsPayload.model_validate({"statuses": ["pending"]})
  with pytest.raises(ValidationError):
    PurgeJobsPayload.model_validate({"olderThanDays": 0})


@pytest.mark.anyio
async def test_job_report_counts_jobs_in_window() -> None:
  repo = InMemoryJobsRepository()
  repo.seed(make_record("a", status="completed", created_at=_days_ago(0)))
  repo.seed(make_record("b", status="failed", created_at=_days_ago(0)))
  repo.seed(make_record("c", job_type="purge_jobs", status="completed", created_at=_days_ago(0)))
  repo.seed(make_record("ancient", status="completed", created_at=_days_ago(10)))

  result = await run_job_report(JobReportPayload.model_validate({"windowHours": 24}), _context(repo, JobType.JOB_REPORT))

  assert result["total"] == 3
  assert result["byStatus"] == {"completed": 2, "failed": 1}
  assert result["byType"] == {"echo": {"completed": 1, "failed": 1}, "purge_jobs": {"completed": 1}}
