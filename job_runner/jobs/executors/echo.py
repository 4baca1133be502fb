"""Echo executor: returns its payload unchanged."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from job_runner.jobs.registry import ExecutorContext


class EchoPayload(BaseModel):
  model_config = ConfigDict(extra="forbid")

  msg: StrictStr = Field(min_length=1, max_length=2000)


async def run_echo(payload: EchoPayload, context: ExecutorContext) -> dict[str, Any]:
  context.logger.debug("Echoing payload for job %s", context.job_id)
  return payload.model_dump(mode="json")
