"""Postgres-backed repository for background jobs using SQLAlchemy."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from job_runner.core.database import get_session_factory
from job_runner.jobs.errors import ConflictError
from job_runner.jobs.models import ALLOWED_TRANSITIONS, TERMINAL_STATUSES, JobEventRecord, JobRecord, JobStatus
from job_runner.schema.jobs import BackgroundJob, JobEvent
from job_runner.storage.jobs_repo import JobsRepository
from job_runner.utils.clock import to_iso

_ACTIVE_DEDUPE_INDEX = "ux_background_jobs_active_dedupe"


class PostgresJobsRepository(JobsRepository):
  """Persist jobs and their events to Postgres using SQLAlchemy."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: JobRecord) -> JobRecord:
    async with self._session_factory() as session:
      row = BackgroundJob(
        id=record.id,
        job_type=record.job_type,
        status=record.status,
        payload=record.payload,
        created_by=record.created_by,
        dedupe_key=record.dedupe_key,
        retry_of=record.retry_of,
      )
      session.add(row)
      try:
        await session.commit()
      except IntegrityError as exc:
        await session.rollback()
        # Two creators raced past the pre-insert lookup; the partial unique index decides.
        if _ACTIVE_DEDUPE_INDEX in str(exc.orig):
          raise ConflictError(f"A {record.job_type} job is already queued. Please wait for it to complete.") from exc
        raise
      await session.refresh(row)
      return self._model_to_record(row)

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(BackgroundJob, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def find_in_flight_by_dedupe_key(self, dedupe_key: str) -> JobRecord | None:
    async with self._session_factory() as session:
      stmt = select(BackgroundJob).where(BackgroundJob.dedupe_key == dedupe_key, BackgroundJob.status.in_(("pending", "processing"))).limit(1)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      return self._model_to_record(row)

  async def list_jobs(self, *, status: JobStatus | None = None, job_type: str | None = None, limit: int = 20, offset: int = 0) -> tuple[list[JobRecord], int]:
    async with self._session_factory() as session:
      filters = []
      if status:
        filters.append(BackgroundJob.status == status)
      if job_type:
        filters.append(BackgroundJob.job_type == job_type)
      stmt = select(BackgroundJob).order_by(BackgroundJob.created_at.desc(), BackgroundJob.id.desc()).limit(limit).offset(offset)
      count_stmt = select(func.count()).select_from(BackgroundJob)
      if filters:
        stmt = stmt.where(and_(*filters))
        count_stmt = count_stmt.where(and_(*filters))
      total = await session.scalar(count_stmt)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows], int(total or 0)

  async def transition_status(self, job_id: str, *, target: JobStatus, result: dict[str, Any] | None = None, error_message: str | None = None) -> JobRecord | None:
    sources = ALLOWED_TRANSITIONS.get(target)
    if not sources:
      raise ValueError(f"No status may transition to {target!r}")
    values: dict[str, Any] = {"status": target, "updated_at": func.now()}
    if target == "processing":
      values["started_at"] = func.now()
    if target in TERMINAL_STATUSES:
      values["completed_at"] = func.now()
      values["result"] = result if target == "completed" else None
      values["error_message"] = error_message if target == "failed" else None
    async with self._session_factory() as session:
      stmt = (
        update(BackgroundJob)
        .where(BackgroundJob.id == job_id, BackgroundJob.status.in_(tuple(sources)))
        .values(**values)
        .returning(BackgroundJob)
        .execution_options(synchronize_session=False)
      )
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._model_to_record(row)

  async def acquire_execution_lease(self, job_id: str, lease: str) -> JobRecord | None:
    async with self._session_factory() as session:
      stmt = (
        update(BackgroundJob)
        .where(BackgroundJob.id == job_id, BackgroundJob.status == "processing", BackgroundJob.execution_lease.is_(None))
        .values(execution_lease=lease, updated_at=func.now())
        .returning(BackgroundJob)
        .execution_options(synchronize_session=False)
      )
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._model_to_record(row)

  async def update_progress(self, job_id: str, *, processed_items: int | None = None, failed_items: int | None = None, total_items: int | None = None) -> JobRecord | None:
    values: dict[str, Any] = {"processed_items": processed_items, "failed_items": failed_items, "total_items": total_items}
    values = {key: value for key, value in values.items() if value is not None}
    if not values:
      return await self.get_job(job_id)
    values["updated_at"] = func.now()
    async with self._session_factory() as session:
      stmt = (
        update(BackgroundJob)
        .where(BackgroundJob.id == job_id, BackgroundJob.status == "processing")
        .values(**values)
        .returning(BackgroundJob)
        .execution_options(synchronize_session=False)
      )
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._model_to_record(row)

  async def fail_stuck_jobs(self, *, older_than: timedelta, error_message: str) -> list[JobRecord]:
    async with self._session_factory() as session:
      # Compare against the database clock, the same one that stamped started_at.
      stmt = (
        update(BackgroundJob)
        .where(BackgroundJob.status == "processing", BackgroundJob.started_at < func.now() - older_than)
        .values(status="failed", error_message=error_message, result=None, completed_at=func.now(), updated_at=func.now())
        .returning(BackgroundJob)
        .execution_options(synchronize_session=False)
      )
      rows = (await session.execute(stmt)).scalars().all()
      await session.commit()
      return [self._model_to_record(row) for row in rows]

  async def claim_pending_jobs(self, *, limit: int = 1) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(BackgroundJob).where(BackgroundJob.status == "pending").order_by(BackgroundJob.created_at.asc()).limit(limit).with_for_update(skip_locked=True)
      rows = (await session.execute(stmt)).scalars().all()
      if not rows:
        return []
      now = await session.scalar(select(func.now()))
      for row in rows:
        row.status = "processing"
        row.started_at = now
        row.updated_at = now
        session.add(row)
      await session.commit()
      return [self._model_to_record(row) for row in rows]

  async def delete_terminal_before(self, cutoff: datetime, *, statuses: list[str]) -> int:
    selected = [status for status in statuses if status in TERMINAL_STATUSES]
    if not selected:
      return 0
    async with self._session_factory() as session:
      stmt = delete(BackgroundJob).where(BackgroundJob.status.in_(selected), BackgroundJob.completed_at.is_not(None), BackgroundJob.completed_at < cutoff)
      outcome = await session.execute(stmt)
      await session.commit()
      return int(outcome.rowcount or 0)

  async def count_by_type_and_status(self, *, since: datetime) -> list[tuple[str, str, int]]:
    async with self._session_factory() as session:
      stmt = (
        select(BackgroundJob.job_type, BackgroundJob.status, func.count())
        .where(BackgroundJob.created_at >= since)
        .group_by(BackgroundJob.job_type, BackgroundJob.status)
        .order_by(BackgroundJob.job_type.asc(), BackgroundJob.status.asc())
      )
      rows = (await session.execute(stmt)).all()
      return [(str(job_type), str(status), int(count)) for job_type, status, count in rows]

  async def append_event(self, *, job_id: str, event_type: str, message: str, payload: dict[str, Any] | None = None) -> None:
    async with self._session_factory() as session:
      session.add(JobEvent(job_id=job_id, event_type=event_type, message=message, payload_json=payload))
      await session.commit()

  async def list_events(self, *, job_id: str, limit: int = 100) -> list[JobEventRecord]:
    async with self._session_factory() as session:
      stmt = select(JobEvent).where(JobEvent.job_id == job_id).order_by(JobEvent.created_at.desc(), JobEvent.id.desc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._event_to_record(row) for row in reversed(rows)]

  def _event_to_record(self, row: JobEvent) -> JobEventRecord:
    return JobEventRecord(id=int(row.id), job_id=row.job_id, event_type=row.event_type, message=row.message, payload=row.payload_json, created_at=to_iso(row.created_at) or "")

  def _model_to_record(self, row: BackgroundJob) -> JobRecord:
    return JobRecord(
      id=row.id,
      job_type=row.job_type,
      status=row.status,
      payload=row.payload or {},
      dedupe_key=row.dedupe_key,
      created_at=to_iso(row.created_at) or "",
      updated_at=to_iso(row.updated_at) or "",
      created_by=row.created_by,
      result=row.result,
      error_message=row.error_message,
      started_at=to_iso(row.started_at),
      completed_at=to_iso(row.completed_at),
      execution_lease=row.execution_lease,
      retry_of=row.retry_of,
      total_items=row.total_items,
      processed_items=row.processed_items or 0,
      failed_items=row.failed_items or 0,
    )
