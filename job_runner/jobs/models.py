"""Domain models for background jobs."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

JobStatus = Literal["pending", "processing", "completed", "failed", "cancelled"]

JOB_STATUSES: tuple[JobStatus, ...] = ("pending", "processing", "completed", "failed", "cancelled")
IN_FLIGHT_STATUSES: frozenset[JobStatus] = frozenset({"pending", "processing"})
TERMINAL_STATUSES: frozenset[JobStatus] = frozenset({"completed", "failed", "cancelled"})

# Every legal status write, keyed by target status. Terminal statuses are never a source.
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
  "processing": frozenset({"pending"}),
  "completed": frozenset({"processing"}),
  "failed": frozenset({"processing"}),
  "cancelled": frozenset({"pending"}),
}


class JobType(str, Enum):
  """Closed set of job kinds this service knows how to execute."""

  ECHO = "echo"
  PURGE_JOBS = "purge_jobs"
  JOB_REPORT = "job_report"

  @classmethod
  def parse(cls, raw: str) -> JobType | None:
    try:
      return cls(raw)
    except ValueError:
      return None


def is_terminal(status: str) -> bool:
  return status in TERMINAL_STATUSES


def can_transition(current: str, target: JobStatus) -> bool:
  """Return True when a status write from ``current`` to ``target`` is legal."""
  return current in ALLOWED_TRANSITIONS.get(target, frozenset())


@dataclass
class JobRecord:
  """Represents one row of the background job queue."""

  id: str
  job_type: str
  status: JobStatus
  payload: dict[str, Any]
  dedupe_key: str
  created_at: str
  updated_at: str
  created_by: str | None = None
  result: dict[str, Any] | None = None
  error_message: str | None = None
  started_at: str | None = None
  completed_at: str | None = None
  execution_lease: str | None = None
  retry_of: str | None = None
  total_items: int | None = None
  processed_items: int = 0
  failed_items: int = 0

  @property
  def is_terminal(self) -> bool:
    return is_terminal(self.status)

  @property
  def percent_complete(self) -> int:
    """Share of ``total_items`` already handled, 0 while the total is unknown."""
    if not self.total_items or self.total_items <= 0:
      return 0
    return min(100, round(self.processed_items / self.total_items * 100))


@dataclass(frozen=True)
class JobEventRecord:
  """One activity entry in a job's timeline."""

  id: int
  job_id: str
  event_type: str
  message: str
  payload: dict[str, Any] | None
  created_at: str
