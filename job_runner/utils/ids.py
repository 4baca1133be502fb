"""Identifier utilities."""

from __future__ import annotations

import secrets
import uuid


def generate_job_id() -> str:
  """Return a new job identifier."""
  return str(uuid.uuid4())


def generate_request_id() -> str:
  """Return a new request correlation identifier."""
  return uuid.uuid4().hex


def generate_execution_lease() -> str:
  """Return an unguessable token marking ownership of one job execution."""
  return secrets.token_urlsafe(24)
