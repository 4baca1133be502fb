"""Job lifecycle orchestration: create, query, cancel, retry and execute."""

from __future__ import annotations

import logging
import time
from typing import Any

import msgspec
from pydantic import ValidationError

from job_runner.api.models import JobEventResponse, JobProgress, JobResponse
from job_runner.jobs.errors import ConflictError, ExecutorError, InvalidStateError, JobNotFoundError, JobValidationError, UnknownJobTypeError
from job_runner.jobs.models import JOB_STATUSES, JobEventRecord, JobRecord, JobType
from job_runner.jobs.registry import ExecutorContext, ExecutorRegistry, ExecutorSpec
from job_runner.storage.jobs_repo import JobsRepository
from job_runner.utils.clock import now_iso
from job_runner.utils.ids import generate_execution_lease, generate_job_id
from job_runner.utils.validation import sanitize_validation_errors

logger = logging.getLogger(__name__)

_JOB_NOT_FOUND_MSG = "Job not found"
_MAX_ERROR_MESSAGE_CHARS = 4000
_MAX_PAGE_SIZE = 100


def job_response_from_record(record: JobRecord) -> JobResponse:
  """Convert a persisted job record into an API response payload."""
  return JobResponse(
    id=record.id,
    job_type=record.job_type,
    status=record.status,
    payload=record.payload,
    result=record.result,
    error_message=record.error_message,
    created_by=record.created_by,
    retry_of=record.retry_of,
    created_at=record.created_at,
    updated_at=record.updated_at,
    started_at=record.started_at,
    completed_at=record.completed_at,
    total_items=record.total_items,
    processed_items=record.processed_items,
    failed_items=record.failed_items,
  )


def job_progress_from_record(record: JobRecord) -> JobProgress:
  return JobProgress(
    id=record.id,
    status=record.status,
    total_items=record.total_items,
    processed_items=record.processed_items,
    failed_items=record.failed_items,
    percent_complete=record.percent_complete,
  )


def job_event_response_from_record(record: JobEventRecord) -> JobEventResponse:
  return JobEventResponse(id=record.id, job_id=record.job_id, event_type=record.event_type, message=record.message, payload=record.payload, created_at=record.created_at)


def _normalize_result(raw: Any) -> dict[str, Any]:
  """Force an executor result through JSON so only a plain object is persisted."""
  if not isinstance(raw, dict):
    raise TypeError(f"Executor returned {type(raw).__name__}, expected a JSON object")
  return msgspec.json.decode(msgspec.json.encode(raw))


def _describe_failure(exc: BaseException) -> str:
  message = str(exc).strip()
  description = f"{type(exc).__name__}: {message}" if message else type(exc).__name__
  return description[:_MAX_ERROR_MESSAGE_CHARS]


class JobService:
  """Coordinates the job store and the executor registry.

  The service never moves a job from pending to processing; that claim belongs
  to the external scheduler. ``execute_job`` re-verifies the processing status
  and takes the execution lease before running anything, so a job runs at most
  once no matter how many times the endpoint is called for it.
  """

  def __init__(self, jobs_repo: JobsRepository, registry: ExecutorRegistry) -> None:
    self._jobs_repo = jobs_repo
    self._registry = registry

  async def create_job(self, job_type: str, payload: dict[str, Any] | None, *, created_by: str | None = None, retry_of: str | None = None) -> JobRecord:
    """Validate and enqueue a new pending job."""
    spec = self._resolve_spec(job_type)
    normalized = self._normalize_payload(spec, payload if payload is not None else {})
    dedupe_key = spec.dedupe_key(normalized)

    # Reject duplicates before writing; the partial unique index covers racing creators.
    existing = await self._jobs_repo.find_in_flight_by_dedupe_key(dedupe_key)
    if existing is not None:
      logger.info("Rejected duplicate %s job; job %s is already %s", spec.job_type.value, existing.id, existing.status)
      raise ConflictError(f"A {spec.job_type.value} job is already {existing.status}. Please wait for it to complete.", details={"jobId": existing.id})

    timestamp = now_iso()
    record = JobRecord(
      id=generate_job_id(),
      job_type=spec.job_type.value,
      status="pending",
      payload=normalized,
      dedupe_key=dedupe_key,
      created_at=timestamp,
      updated_at=timestamp,
      created_by=created_by,
      retry_of=retry_of,
    )
    created = await self._jobs_repo.create_job(record)
    await self._record_event(created.id, "job.created", f"Job created: {created.job_type}", {"createdBy": created_by, "retryOf": retry_of})
    logger.info("Created job %s type=%s created_by=%s", created.id, created.job_type, created_by)
    return created

  async def list_jobs(self, *, status: str | None = None, job_type: str | None = None, limit: int = 20, offset: int = 0) -> tuple[list[JobRecord], int]:
    if status is not None and status not in JOB_STATUSES:
      raise JobValidationError(f"Unknown job status: {status}")
    if limit < 1 or limit > _MAX_PAGE_SIZE:
      raise JobValidationError(f"limit must be between 1 and {_MAX_PAGE_SIZE}")
    if offset < 0:
      raise JobValidationError("offset must be zero or greater")
    return await self._jobs_repo.list_jobs(status=status, job_type=job_type, limit=limit, offset=offset)

  async def get_job(self, job_id: str) -> JobRecord:
    record = await self._jobs_repo.get_job(job_id)
    if record is None:
      raise JobNotFoundError(_JOB_NOT_FOUND_MSG)
    return record

  async def get_job_progress(self, job_id: str) -> JobProgress:
    """Return the progress counters and completion percentage of a job."""
    return job_progress_from_record(await self.get_job(job_id))

  async def execute_job(self, job_id: str) -> JobRecord:
    """Run the executor for a claimed job and persist its terminal status.

    Raises JobNotFoundError for unknown ids and InvalidStateError when the job is
    not processing or another call already owns its execution; neither case
    invokes an executor. Executor failures are persisted on the row and
    re-raised as ExecutorError.
    """
    record = await self.get_job(job_id)
    if record.status != "processing":
      logger.info("Skipping execution of job %s in status %s", job_id, record.status)
      raise InvalidStateError(f"Job is not in processing state (current status: {record.status})", job_id=job_id, status=record.status)

    owned = await self._jobs_repo.acquire_execution_lease(job_id, generate_execution_lease())
    if owned is None:
      current = await self._jobs_repo.get_job(job_id)
      current_status = current.status if current is not None else record.status
      logger.info("Skipping execution of job %s; execution already owned (status=%s)", job_id, current_status)
      raise InvalidStateError(f"Job is already being executed (current status: {current_status})", job_id=job_id, status=current_status)

    spec = self._registry.get(owned.job_type)
    if spec is None:
      reason = f"UnknownJobType: no executor registered for job type {owned.job_type!r}"
      logger.error("Job %s failed: %s", job_id, reason)
      await self._mark_failed(owned, reason)
      raise UnknownJobTypeError(reason)

    await self._record_event(job_id, "job.started", f"Job started: {owned.job_type}")
    context = ExecutorContext(job_id=job_id, job_type=spec.job_type, jobs_repo=self._jobs_repo, logger=logging.getLogger(f"{__name__}.{spec.job_type.value}"))
    started = time.monotonic()
    try:
      payload = spec.validate_payload(owned.payload)
      result = _normalize_result(await spec.executor(payload, context))
    except Exception as exc:  # noqa: BLE001
      reason = _describe_failure(exc)
      logger.error("Job %s type=%s failed after %.3fs: %s", job_id, owned.job_type, time.monotonic() - started, reason, exc_info=True)
      await self._mark_failed(owned, reason)
      raise ExecutorError(reason) from exc

    completed = await self._jobs_repo.transition_status(job_id, target="completed", result=result)
    if completed is None:
      # The row left processing underneath us (deleted by retention, for instance).
      raise InvalidStateError("Job left processing state before completion", job_id=job_id)
    await self._record_event(job_id, "job.completed", f"Job completed: {owned.job_type}")
    logger.info("Job %s type=%s completed in %.3fs", job_id, owned.job_type, time.monotonic() - started)
    return completed

  async def cancel_job(self, job_id: str, *, cancelled_by: str | None = None) -> JobRecord:
    """Cancel a pending job; processing and terminal jobs are rejected."""
    record = await self.get_job(job_id)
    if record.status != "pending":
      raise InvalidStateError(f"Only pending jobs can be cancelled (current status: {record.status})", job_id=job_id, status=record.status)

    cancelled = await self._jobs_repo.transition_status(job_id, target="cancelled")
    if cancelled is None:
      # Lost the race against the scheduler's claim.
      current = await self.get_job(job_id)
      raise InvalidStateError(f"Only pending jobs can be cancelled (current status: {current.status})", job_id=job_id, status=current.status)

    await self._record_event(job_id, "job.cancelled", "Job cancelled", {"cancelledBy": cancelled_by})
    logger.info("Cancelled job %s cancelled_by=%s", job_id, cancelled_by)
    return cancelled

  async def retry_job(self, job_id: str, *, requested_by: str | None = None) -> JobRecord:
    """Enqueue a fresh pending copy of a failed job."""
    record = await self.get_job(job_id)
    if record.status != "failed":
      raise InvalidStateError(f"Only failed jobs can be retried (current status: {record.status})", job_id=job_id, status=record.status)

    retried = await self.create_job(record.job_type, record.payload, created_by=requested_by, retry_of=record.id)
    await self._record_event(job_id, "job.retried", "Job retried", {"retryJobId": retried.id, "requestedBy": requested_by})
    logger.info("Retried job %s as %s requested_by=%s", job_id, retried.id, requested_by)
    return retried

  async def list_job_events(self, job_id: str, *, limit: int = 100) -> list[JobEventRecord]:
    await self.get_job(job_id)
    return await self._jobs_repo.list_events(job_id=job_id, limit=limit)

  def _resolve_spec(self, job_type: str) -> ExecutorSpec:
    parsed = JobType.parse(job_type) if isinstance(job_type, str) else None
    spec = self._registry.get(parsed) if parsed is not None else None
    if spec is None:
      raise JobValidationError(f"Unknown job type: {job_type}")
    return spec

  def _normalize_payload(self, spec: ExecutorSpec, payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
      raise JobValidationError("Job payload must be a JSON object")
    try:
      return spec.normalize_payload(payload)
    except ValidationError as exc:
      raise JobValidationError(f"Invalid payload for job type {spec.job_type.value}", details=sanitize_validation_errors(exc.errors(include_url=False))) from exc

  async def _mark_failed(self, record: JobRecord, reason: str) -> None:
    failed = await self._jobs_repo.transition_status(record.id, target="failed", error_message=reason)
    if failed is None:
      logger.warning("Job %s was no longer processing when recording failure", record.id)
      return
    await self._record_event(record.id, "job.failed", f"Job failed: {record.job_type}", {"error": reason})

  async def _record_event(self, job_id: str, event_type: str, message: str, payload: dict[str, Any] | None = None) -> None:
    # The event log is advisory; a failed write must not undo a status change.
    try:
      await self._jobs_repo.append_event(job_id=job_id, event_type=event_type, message=message, payload=payload)
    except Exception:  # noqa: BLE001
      logger.warning("Failed to record %s event for job %s", event_type, job_id, exc_info=True)


__all__ = ["JobService", "job_event_response_from_record", "job_progress_from_record", "job_response_from_record"]
