from job_runner.config import Settings
from job_runner.storage.jobs_repo import JobsRepository
from job_runner.storage.postgres_jobs_repo import PostgresJobsRepository


def _get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the active jobs repository."""

  # Jobs are only ever persisted in Postgres.

  if not settings.pg_dsn:
    raise ValueError("JOB_RUNNER_PG_DSN must be set to enable Postgres persistence.")

  return PostgresJobsRepository()
