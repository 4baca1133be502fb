"""Load job runner settings from a .env file before the environment is read."""

from __future__ import annotations

import os
from pathlib import Path

ENV_FILE_VARIABLE = "JOB_RUNNER_ENV_FILE"


def resolve_env_path() -> Path:
  """Return the .env file to load: ``JOB_RUNNER_ENV_FILE`` when set, else the repo root .env."""
  override = os.getenv(ENV_FILE_VARIABLE, "").strip()
  if override:
    return Path(override).expanduser()
  return Path(__file__).resolve().parents[2] / ".env"


def parse_env_line(raw_line: str) -> tuple[str, str] | None:
  """Parse one ``KEY=value`` line; comments, blanks and malformed lines yield None."""
  line = raw_line.strip()
  if not line or line.startswith("#"):
    return None
  line = line.removeprefix("export ").lstrip()
  key, separator, value = line.partition("=")
  key = key.strip()
  if not separator or not key:
    return None
  value = value.strip()
  if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
    value = value[1:-1]
  return key, value


def load_env_file(path: Path, *, override: bool = False) -> list[str]:
  """Export the file's variables into ``os.environ`` and return the keys that were set.

  Real environment variables win unless ``override`` is true, so deployments
  can always replace a value shipped in the file.
  """
  if not path.is_file():
    return []

  loaded: list[str] = []
  for raw_line in path.read_text(encoding="utf-8").splitlines():
    parsed = parse_env_line(raw_line)
    if parsed is None:
      continue
    key, value = parsed
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    loaded.append(key)
  return loaded
