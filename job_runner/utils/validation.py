"""Helpers that make pydantic validation errors safe to return to callers."""

from __future__ import annotations

from typing import Any

_REDACTED_KEYS = frozenset({"input", "url"})


def coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [coerce_json_safe(item) for item in value]
  # Exceptions in ``ctx`` become "Type: message" strings.
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key not in _REDACTED_KEYS}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(coerce_json_safe(scrubbed))

  return sanitized
