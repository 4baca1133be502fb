"""Shared-secret authentication for the worker execution endpoint."""

from __future__ import annotations

import hashlib
import secrets

from job_runner.config import Settings
from job_runner.jobs.errors import AuthError, WorkerNotConfiguredError

WORKER_SECRET_HEADER = "X-Job-Runner-Secret"


def secure_compare(provided: str, expected: str) -> bool:
  """Compare two secrets in constant time.

  Both values are hashed first so compare_digest always sees equal-length
  inputs and the provided length cannot be inferred from timing.
  """
  provided_digest = hashlib.sha256(provided.encode("utf-8")).digest()
  expected_digest = hashlib.sha256(expected.encode("utf-8")).digest()
  return secrets.compare_digest(provided_digest, expected_digest)


def verify_worker_secret(provided: str | None, settings: Settings) -> None:
  """Raise unless ``provided`` matches the configured worker secret."""
  expected = settings.job_runner_secret
  # Fail closed when the deployment has no secret.
  if not expected:
    raise WorkerNotConfiguredError("JOB_RUNNER_SECRET is not configured")
  if not provided:
    raise AuthError(f"Missing {WORKER_SECRET_HEADER} header")
  if not secure_compare(provided, expected):
    raise AuthError("Invalid job runner secret")
