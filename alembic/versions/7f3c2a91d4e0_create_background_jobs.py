"""Create background_jobs and job_events

Revision ID: 7f3c2a91d4e0
Revises:
Create Date: 2026-10-18 09:12:44.318204

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "7f3c2a91d4e0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "background_jobs",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("job_type", sa.String(), nullable=False),
    sa.Column("status", sa.String(), server_default=sa.text("'pending'"), nullable=False),
    sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
    sa.Column("result", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("created_by", sa.String(), nullable=True),
    sa.Column("dedupe_key", sa.String(), nullable=False),
    sa.Column("execution_lease", sa.String(), nullable=True),
    sa.Column("retry_of", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.CheckConstraint("status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')", name="ck_background_jobs_status"),
    sa.CheckConstraint("result IS NULL OR status = 'completed'", name="ck_background_jobs_result_completed"),
    sa.CheckConstraint("error_message IS NULL OR status = 'failed'", name="ck_background_jobs_error_failed"),
    sa.CheckConstraint("started_at IS NULL OR completed_at IS NULL OR started_at <= completed_at", name="ck_background_jobs_timeline"),
    sa.ForeignKeyConstraint(["retry_of"], ["background_jobs.id"], ondelete="SET NULL"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index("ux_background_jobs_active_dedupe", "background_jobs", ["dedupe_key"], unique=True, postgresql_where=sa.text("status IN ('pending', 'processing')"))
  op.create_index("ix_background_jobs_pending", "background_jobs", ["job_type", "created_at"], unique=False, postgresql_where=sa.text("status = 'pending'"))
  op.create_index("ix_background_jobs_status_created", "background_jobs", ["status", "created_at"], unique=False)
  op.create_index("ix_background_jobs_created_at", "background_jobs", ["created_at"], unique=False)
  op.create_index(op.f("ix_background_jobs_created_by"), "background_jobs", ["created_by"], unique=False)
  op.create_index(op.f("ix_background_jobs_retry_of"), "background_jobs", ["retry_of"], unique=False)

  op.create_table(
    "job_events",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("message", sa.Text(), nullable=False),
    sa.Column("payload_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.ForeignKeyConstraint(["job_id"], ["background_jobs.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_job_events_job_id"), "job_events", ["job_id"], unique=False)
  op.create_index(op.f("ix_job_events_event_type"), "job_events", ["event_type"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_job_events_event_type"), table_name="job_events")
  op.drop_index(op.f("ix_job_events_job_id"), table_name="job_events")
  op.drop_table("job_events")
  op.drop_index(op.f("ix_background_jobs_retry_of"), table_name="background_jobs")
  op.drop_index(op.f("ix_background_jobs_created_by"), table_name="background_jobs")
  op.drop_index("ix_background_jobs_created_at", table_name="background_jobs")
  op.drop_index("ix_background_jobs_status_created", table_name="background_jobs")
  op.drop_index("ix_background_jobs_pending", table_name="background_jobs")
  op.drop_index("ux_background_jobs_active_dedupe", table_name="background_jobs")
  op.drop_table("background_jobs")
