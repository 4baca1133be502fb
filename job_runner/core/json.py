"""JSON response rendering backed by msgspec."""

from __future__ import annotations

from typing import Any

import msgspec
from fastapi.responses import JSONResponse


class MsgspecJSONResponse(JSONResponse):
  """JSONResponse that encodes with msgspec (datetimes, UUIDs and sets included)."""

  def render(self, content: Any) -> bytes:
    return msgspec.json.encode(content)
