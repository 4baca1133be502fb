"""Error taxonomy for the job queue.

Each error carries the HTTP status the API layer maps it to and a message that
is safe to return to callers. Anything more detailed belongs in server logs or
on the job row.
"""

from __future__ import annotations

from typing import Any


class JobError(Exception):
  """Base class for job queue failures surfaced through the API."""

  status_code: int = 500
  public_message: str = "Internal Server Error"

  def __init__(self, message: str | None = None, *, details: Any = None) -> None:
    super().__init__(message or self.public_message)
    self.details = details

  @property
  def client_message(self) -> str:
    # Server-side failures never echo their detail.
    if self.status_code >= 500:
      return self.public_message
    return str(self)


class JobValidationError(JobError):
  """Malformed job type, payload, or identifier."""

  status_code = 400
  public_message = "Invalid request data"


class JobNotFoundError(JobError):
  status_code = 404
  public_message = "Job not found"


class ConflictError(JobError):
  """An equivalent job is already pending or processing."""

  status_code = 409
  public_message = "An equivalent job is already in flight"


class AuthError(JobError):
  status_code = 401
  public_message = "Invalid job runner secret"


class RateLimitError(JobError):
  status_code = 429
  public_message = "Rate limit exceeded"

  def __init__(self, message: str | None = None, *, retry_after: int, limit: int, reset_at: int) -> None:
    super().__init__(message or f"Rate limit exceeded. Try again in {retry_after} seconds.")
    self.retry_after = retry_after
    self.limit = limit
    self.reset_at = reset_at


class InvalidStateError(JobError):
  """The job is not in a status that allows the requested operation."""

  status_code = 400
  public_message = "Job is not in a valid state for this operation"

  def __init__(self, message: str | None = None, *, job_id: str | None = None, status: str | None = None) -> None:
    super().__init__(message)
    self.job_id = job_id
    self.status = status


class ExecutorError(JobError):
  """The executor raised or produced an invalid result."""

  status_code = 500
  public_message = "Job execution failed"


class UnknownJobTypeError(ExecutorError):
  """No executor is registered for a stored job's type."""


class WorkerNotConfiguredError(JobError):
  """The worker secret is missing from the deployment."""

  status_code = 500
  public_message = "Job runner not configured"


class ExecutorAlreadyRegisteredError(RuntimeError):
  """Raised at startup when two executors claim the same job type."""


class RegistryFrozenError(RuntimeError):
  """Raised when registering after the registry has been sealed."""
