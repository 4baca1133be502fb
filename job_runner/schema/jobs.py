from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from job_runner.core.database import Base


class BackgroundJob(Base):
  __tablename__ = "background_jobs"
  __table_args__ = (
    CheckConstraint("status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')", name="ck_background_jobs_status"),
    CheckConstraint("result IS NULL OR status = 'completed'", name="ck_background_jobs_result_completed"),
    CheckConstraint("error_message IS NULL OR status = 'failed'", name="ck_background_jobs_error_failed"),
    CheckConstraint("started_at IS NULL OR completed_at IS NULL OR started_at <= completed_at", name="ck_background_jobs_timeline"),
    Index("ux_background_jobs_active_dedupe", "dedupe_key", unique=True, postgresql_where=text("status IN ('pending', 'processing')")),
    Index("ix_background_jobs_pending", "job_type", "created_at", postgresql_where=text("status = 'pending'")),
    Index("ix_background_jobs_status_created", "status", "created_at"),
    Index("ix_background_jobs_created_at", "created_at"),
    Index("ix_background_jobs_processing_started", "started_at", postgresql_where=text("status = 'processing'")),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True)
  job_type: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'pending'"))
  payload: Mapped[dict] = mapped_column(JSONB, nullable=False, server_default=text("'{}'::jsonb"))
  result: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_by: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  dedupe_key: Mapped[str] = mapped_column(String, nullable=False)
  execution_lease: Mapped[str | None] = mapped_column(String, nullable=True)
  retry_of: Mapped[str | None] = mapped_column(ForeignKey("background_jobs.id", ondelete="SET NULL"), nullable=True, index=True)
  total_items: Mapped[int | None] = mapped_column(Integer, nullable=True)
  processed_items: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
  failed_items: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class JobEvent(Base):
  __tablename__ = "job_events"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("background_jobs.id", ondelete="CASCADE"), nullable=False, index=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  payload_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
