"""UTC timestamp helpers shared by storage and services."""

from __future__ import annotations

from datetime import UTC, datetime

_ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
  return datetime.now(UTC)


def to_iso(value: datetime | None) -> str | None:
  """Render an aware datetime as a sortable UTC ISO-8601 string."""
  if value is None:
    return None
  if value.tzinfo is None:
    value = value.replace(tzinfo=UTC)
  return value.astimezone(UTC).strftime(_ISO_FORMAT)


def now_iso() -> str:
  return utc_now().strftime(_ISO_FORMAT)
