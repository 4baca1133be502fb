from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, Request, Response, status

from job_runner.api.deps import get_execute_rate_limiter, get_job_service
from job_runner.api.models import ExecuteJobData, ExecuteJobResponse
from job_runner.config import Settings, get_settings
from job_runner.core.exceptions import RATE_LIMIT_HEADERS_STATE_KEY
from job_runner.core.rate_limit import FixedWindowRateLimiter, client_address, execute_rate_limit_key
from job_runner.core.security import WORKER_SECRET_HEADER, verify_worker_secret
from job_runner.jobs.errors import InvalidStateError, JobValidationError, RateLimitError
from job_runner.services.jobs import JobService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/{job_id}/execute", response_model=ExecuteJobResponse, status_code=status.HTTP_200_OK)
async def execute_job(  # noqa: B008
  job_id: str,
  request: Request,
  response: Response,
  worker_secret: str | None = Header(default=None, alias=WORKER_SECRET_HEADER),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
  limiter: FixedWindowRateLimiter = Depends(get_execute_rate_limiter),  # noqa: B008
  job_service: JobService = Depends(get_job_service),  # noqa: B008
) -> ExecuteJobResponse:
  """Run a claimed job on behalf of the scheduler.

  Checks run in a fixed order and each one short-circuits: rate limit, job id,
  worker secret, then dispatch. Nothing touches the job store before the
  secret has been verified.
  """
  address = client_address(request, trust_proxy_headers=settings.trust_proxy_headers)
  outcome = limiter.hit(execute_rate_limit_key(address))
  rate_limit_headers = outcome.headers()
  # Error handlers read these back so every response carries the counters.
  setattr(request.state, RATE_LIMIT_HEADERS_STATE_KEY, rate_limit_headers)
  response.headers.update(rate_limit_headers)
  if not outcome.allowed:
    logger.warning("Execute rate limit exceeded for %s (limit=%s, retry_after=%ss)", address, outcome.limit, outcome.retry_after)
    raise RateLimitError(retry_after=outcome.retry_after, limit=outcome.limit, reset_at=outcome.reset_at)

  job_id = job_id.strip()
  if not job_id:
    raise JobValidationError("Job ID is required")

  verify_worker_secret(worker_secret, settings)

  try:
    record = await job_service.execute_job(job_id)
  except InvalidStateError as exc:
    # Re-delivered or stale triggers are acknowledged so the scheduler does not retry them.
    return ExecuteJobResponse(skipped=True, data=ExecuteJobData(id=job_id, status=exc.status), message=str(exc))

  return ExecuteJobResponse(data=ExecuteJobData(id=record.id, status=record.status, result=record.result), message="Job executed successfully")
