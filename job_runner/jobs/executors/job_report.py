"""Reporting executor summarising queue activity over a trailing window."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from job_runner.jobs.registry import ExecutorContext
from job_runner.utils.clock import to_iso, utc_now


class JobReportPayload(BaseModel):
  model_config = ConfigDict(extra="forbid", populate_by_name=True)

  window_hours: int = Field(default=24, ge=1, le=24 * 90, alias="windowHours")


async def run_job_report(payload: JobReportPayload, context: ExecutorContext) -> dict[str, Any]:
  since = utc_now() - timedelta(hours=payload.window_hours)
  rows = await context.jobs_repo.count_by_type_and_status(since=since)

  by_status: dict[str, int] = {}
  by_type: dict[str, dict[str, int]] = {}
  for job_type, status, count in rows:
    by_status[status] = by_status.get(status, 0) + count
    by_type.setdefault(job_type, {})[status] = count

  return {"since": to_iso(since), "total": sum(by_status.values()), "byStatus": by_status, "byType": by_type}
