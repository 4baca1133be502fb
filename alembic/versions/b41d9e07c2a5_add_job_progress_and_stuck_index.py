"""Add job progress counters and processing start index

Revision ID: b41d9e07c2a5
Revises: 7f3c2a91d4e0
Create Date: 2026-10-25 14:03:51.902117

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "b41d9e07c2a5"
down_revision: str | Sequence[str] | None = "7f3c2a91d4e0"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
  """Upgrade schema."""
  op.add_column("background_jobs", sa.Column("total_items", sa.Integer(), nullable=True))
  op.add_column("background_jobs", sa.Column("processed_items", sa.Integer(), server_default=sa.text("0"), nullable=False))
  op.add_column("background_jobs", sa.Column("failed_items", sa.Integer(), server_default=sa.text("0"), nullable=False))
  # The scheduler's timeout sweep scans processing rows by start time.
  op.create_index("ix_background_jobs_processing_started", "background_jobs", ["started_at"], unique=False, postgresql_where=sa.text("status = 'processing'"))


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ix_background_jobs_processing_started", table_name="background_jobs")
  op.drop_column("background_jobs", "failed_items")
  op.drop_column("background_jobs", "processed_items")
  op.drop_column("background_jobs", "total_items")
