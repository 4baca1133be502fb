"""Retention executor that deletes old terminal jobs and their events."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from job_runner.jobs.registry import ExecutorContext
from job_runner.utils.clock import to_iso, utc_now

TerminalStatus = Literal["completed", "failed", "cancelled"]


class PurgeJobsPayload(BaseModel):
  model_config = ConfigDict(extra="forbid", populate_by_name=True)

  older_than_days: int = Field(default=30, ge=1, le=3650, alias="olderThanDays")
  statuses: list[TerminalStatus] = Field(default_factory=lambda: ["completed", "failed", "cancelled"], min_length=1)


async def run_purge_jobs(payload: PurgeJobsPayload, context: ExecutorContext) -> dict[str, Any]:
  """Delete terminal jobs whose completion is older than the cutoff.

  Each status is purged as its own batch so progress advances per status.
  """
  cutoff = utc_now() - timedelta(days=payload.older_than_days)
  statuses = sorted(set(payload.statuses))
  await context.report_progress(total=len(statuses), processed=0)

  deleted_by_status: dict[str, int] = {}
  for index, status in enumerate(statuses, start=1):
    deleted_by_status[status] = await context.jobs_repo.delete_terminal_before(cutoff, statuses=[status])
    await context.report_progress(processed=index)

  deleted = sum(deleted_by_status.values())
  context.logger.info("Purged %d job(s) completed before %s (statuses=%s)", deleted, to_iso(cutoff), ",".join(statuses))
  return {"deleted": deleted, "deletedByStatus": deleted_by_status, "cutoff": to_iso(cutoff), "statuses": statuses}
