"""Storage interfaces for background jobs."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Protocol

from job_runner.jobs.models import JobEventRecord, JobRecord, JobStatus


class JobsRepository(Protocol):
  """Repository contract for job persistence.

  Every status write goes through ``transition_status``, which only updates a
  row whose current status is a legal source for the target status.
  """

  async def create_job(self, record: JobRecord) -> JobRecord:
    """Persist a new pending job; raises ConflictError when its dedupe key is in flight."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def find_in_flight_by_dedupe_key(self, dedupe_key: str) -> JobRecord | None:
    """Return the pending/processing job holding a dedupe key, if any."""

  async def list_jobs(self, *, status: JobStatus | None = None, job_type: str | None = None, limit: int = 20, offset: int = 0) -> tuple[list[JobRecord], int]:
    """Return one page of jobs (newest first) and the total matching count."""

  async def transition_status(
    self,
    job_id: str,
    *,
    target: JobStatus,
    result: dict[str, Any] | None = None,
    error_message: str | None = None,
  ) -> JobRecord | None:
    """Apply a guarded status write and stamp its timestamps.

    Moving to processing sets started_at, moving to a terminal status sets
    completed_at. Returns None when the row is missing or not in a source status.
    """

  async def acquire_execution_lease(self, job_id: str, lease: str) -> JobRecord | None:
    """Take ownership of a processing job exactly once; None when already owned or not processing."""

  async def update_progress(self, job_id: str, *, processed_items: int | None = None, failed_items: int | None = None, total_items: int | None = None) -> JobRecord | None:
    """Overwrite the given progress counters of a processing job; None when it is not processing."""

  async def claim_pending_jobs(self, *, limit: int = 1) -> list[JobRecord]:
    """Atomically move the oldest pending jobs to processing (scheduler side)."""

  async def fail_stuck_jobs(self, *, older_than: timedelta, error_message: str) -> list[JobRecord]:
    """Fail every job that has been processing for longer than ``older_than``; returns the failed rows."""

  async def delete_terminal_before(self, cutoff: datetime, *, statuses: list[str]) -> int:
    """Delete terminal jobs completed before ``cutoff``; returns the number removed."""

  async def count_by_type_and_status(self, *, since: datetime) -> list[tuple[str, str, int]]:
    """Return (job_type, status, count) rows for jobs created since ``since``."""

  async def append_event(self, *, job_id: str, event_type: str, message: str, payload: dict[str, Any] | None = None) -> None:
    """Append one timeline event for a job."""

  async def list_events(self, *, job_id: str, limit: int = 100) -> list[JobEventRecord]:
    """List the most recent events for a job, oldest first."""
