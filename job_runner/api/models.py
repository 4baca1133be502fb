from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from job_runner.jobs.models import JobStatus


def _to_camel(string: str) -> str:
  """Convert snake_case to camelCase so responses match the admin frontend."""
  parts = string.split("_")
  if not parts:
    return string
  return parts[0] + "".join(part[:1].upper() + part[1:] for part in parts[1:])


class CamelModel(BaseModel):
  model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)


class CreateJobRequest(CamelModel):
  """Request payload for enqueueing a background job."""

  job_type: StrictStr = Field(min_length=1, max_length=100, description="Registered job type, e.g. 'echo'.", examples=["echo"])
  payload: dict[str, Any] = Field(default_factory=dict, description="Job-type specific payload.")
  model_config = ConfigDict(extra="forbid", populate_by_name=True, alias_generator=_to_camel)


class JobResponse(CamelModel):
  """Public representation of one job row."""

  id: StrictStr
  job_type: StrictStr
  status: JobStatus
  payload: dict[str, Any]
  result: dict[str, Any] | None = None
  error_message: StrictStr | None = None
  created_by: StrictStr | None = None
  retry_of: StrictStr | None = None
  created_at: StrictStr
  updated_at: StrictStr
  started_at: StrictStr | None = None
  completed_at: StrictStr | None = None
  total_items: int | None = None
  processed_items: int = 0
  failed_items: int = 0


class JobProgress(CamelModel):
  """Progress counters reported by a running executor."""

  id: StrictStr
  status: JobStatus
  total_items: int | None = None
  processed_items: int = Field(default=0, ge=0)
  failed_items: int = Field(default=0, ge=0)
  percent_complete: int = Field(default=0, ge=0, le=100)


class JobProgressEnvelope(CamelModel):
  success: bool = True
  data: JobProgress


class JobEnvelope(CamelModel):
  success: bool = True
  data: JobResponse
  message: StrictStr | None = None


class Pagination(CamelModel):
  total: int = Field(ge=0)
  page: int = Field(ge=1)
  limit: int = Field(ge=1)
  offset: int = Field(ge=0)
  total_pages: int = Field(ge=0)

  @classmethod
  def build(cls, *, total: int, limit: int, offset: int) -> Pagination:
    return cls(total=total, page=offset // limit + 1, limit=limit, offset=offset, total_pages=(total + limit - 1) // limit)


class JobListResponse(CamelModel):
  success: bool = True
  data: list[JobResponse]
  pagination: Pagination


class JobEventResponse(CamelModel):
  """One entry of a job's activity log."""

  id: int
  job_id: StrictStr
  event_type: StrictStr
  message: StrictStr
  payload: dict[str, Any] | None = None
  created_at: StrictStr


class JobEventListResponse(CamelModel):
  success: bool = True
  data: list[JobEventResponse]


class ExecuteJobData(CamelModel):
  id: StrictStr
  status: JobStatus | None = None
  result: dict[str, Any] | None = None


class ExecuteJobResponse(CamelModel):
  """Response returned to the scheduler after an execute call.

  ``skipped`` is true when the job was not in a runnable state and nothing ran.
  """

  success: bool = True
  skipped: bool = False
  data: ExecuteJobData
  message: StrictStr | None = None


class HealthResponse(BaseModel):
  status: StrictStr
  version: StrictStr
