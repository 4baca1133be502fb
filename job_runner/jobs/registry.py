"""Executor registry mapping job types to their executors.

The registry is built once during startup, sealed with ``freeze()``, and handed
to the job service as an explicit dependency. After that it is read-only:
adding a job type means shipping code and restarting the process.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import msgspec
from pydantic import BaseModel

from job_runner.jobs.errors import ExecutorAlreadyRegisteredError, RegistryFrozenError
from job_runner.jobs.models import JobType
from job_runner.utils.ids import generate_job_id

if TYPE_CHECKING:
  from job_runner.storage.jobs_repo import JobsRepository


class DedupePolicy(str, Enum):
  """How duplicate in-flight jobs are recognised for one job type."""

  JOB_TYPE = "job_type"  # one pending/processing job per type
  PAYLOAD = "payload"  # one per type and canonical payload
  NONE = "none"


@dataclass(frozen=True)
class ExecutorContext:
  """Collaborators an executor may use while running one job."""

  job_id: str
  job_type: JobType
  jobs_repo: JobsRepository
  logger: logging.Logger

  async def report_progress(self, *, processed: int | None = None, failed: int | None = None, total: int | None = None) -> None:
    """Persist progress counters for the running job.

    Progress is informational: a failed write is logged and the executor keeps
    running.
    """
    try:
      await self.jobs_repo.update_progress(self.job_id, processed_items=processed, failed_items=failed, total_items=total)
    except Exception:  # noqa: BLE001
      self.logger.warning("Failed to update progress for job %s", self.job_id, exc_info=True)


Executor = Callable[[Any, ExecutorContext], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class ExecutorSpec:
  """Everything the service needs to validate, dedupe and run one job type."""

  job_type: JobType
  executor: Executor
  payload_model: type[BaseModel]
  dedupe: DedupePolicy

  def validate_payload(self, payload: dict[str, Any]) -> BaseModel:
    """Parse a raw payload; raises pydantic.ValidationError."""
    return self.payload_model.model_validate(payload)

  def normalize_payload(self, payload: dict[str, Any]) -> dict[str, Any]:
    return self.validate_payload(payload).model_dump(mode="json", by_alias=True)

  def dedupe_key(self, normalized_payload: dict[str, Any]) -> str:
    if self.dedupe is DedupePolicy.JOB_TYPE:
      return self.job_type.value
    if self.dedupe is DedupePolicy.PAYLOAD:
      return f"{self.job_type.value}:{payload_fingerprint(normalized_payload)}"
    # Unique per job, so the in-flight index never matches another row.
    return f"{self.job_type.value}:{generate_job_id()}"


def payload_fingerprint(payload: dict[str, Any]) -> str:
  """Return a stable digest of a JSON payload regardless of key order."""
  canonical = msgspec.json.encode(payload, order="sorted")
  return hashlib.sha256(canonical).hexdigest()


class ExecutorRegistry:
  """Append-only registry of executors keyed by job type."""

  def __init__(self) -> None:
    self._specs: dict[JobType, ExecutorSpec] = {}
    self._frozen = False

  def register(self, job_type: JobType, executor: Executor, *, payload_model: type[BaseModel], dedupe: DedupePolicy = DedupePolicy.JOB_TYPE) -> None:
    """Register the executor for a job type; duplicates are a startup error."""
    if self._frozen:
      raise RegistryFrozenError(f"Cannot register {job_type.value!r}: registry is frozen")
    if job_type in self._specs:
      raise ExecutorAlreadyRegisteredError(f"Executor already registered for job type: {job_type.value}")
    self._specs[job_type] = ExecutorSpec(job_type=job_type, executor=executor, payload_model=payload_model, dedupe=dedupe)

  def get(self, job_type: str | JobType) -> ExecutorSpec | None:
    parsed = job_type if isinstance(job_type, JobType) else JobType.parse(job_type)
    if parsed is None:
      return None
    return self._specs.get(parsed)

  def has(self, job_type: str | JobType) -> bool:
    return self.get(job_type) is not None

  def registered_types(self) -> list[JobType]:
    return list(self._specs)

  def freeze(self) -> None:
    self._frozen = True

  @property
  def frozen(self) -> bool:
    return self._frozen


def ensure_complete(registry: ExecutorRegistry) -> None:
  """Fail fast when a JobType member has no executor."""
  missing = [job_type.value for job_type in JobType if not registry.has(job_type)]
  if missing:
    raise RuntimeError(f"No executor registered for job types: {', '.join(missing)}")
