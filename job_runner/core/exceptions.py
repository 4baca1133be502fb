import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError

from job_runner.config import get_settings
from job_runner.core.json import MsgspecJSONResponse
from job_runner.jobs.errors import JobError, RateLimitError
from job_runner.utils.validation import coerce_json_safe, sanitize_validation_errors

RATE_LIMIT_HEADERS_STATE_KEY = "rate_limit_headers"


def _error_payload(message: str, *, request_id: str | None = None, errors: Any = None, details: dict[str, Any] | None = None) -> dict[str, Any]:
  """Build the failure envelope returned for every error response."""
  payload: dict[str, Any] = {"success": False, "message": message}
  if errors is not None:
    payload["errors"] = errors
  if details:
    payload["details"] = details
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _response_headers(request: Request) -> dict[str, str]:
  """Carry rate-limit headers computed earlier in the request onto error responses."""
  headers = getattr(request.state, RATE_LIMIT_HEADERS_STATE_KEY, None)
  return dict(headers) if headers else {}


async def job_error_handler(request: Request, exc: JobError) -> MsgspecJSONResponse:
  """Map job queue errors to their HTTP status with a client-safe message."""
  settings = get_settings()
  request_id = _request_id(request)
  headers = _response_headers(request)
  logger = logging.getLogger("uvicorn.error")

  if exc.status_code >= 500:
    # Server-side detail stays in the logs; callers only see the public message.
    logger.error("Job error request_id=%s path=%s error_type=%s detail=%s", request_id, request.url.path, type(exc).__name__, exc, exc_info=exc.__cause__ is not None)
  elif settings.log_http_4xx:
    logger.warning("Job error request_id=%s path=%s status_code=%s message=%s", request_id, request.url.path, exc.status_code, exc)

  if isinstance(exc, RateLimitError):
    headers["Retry-After"] = str(exc.retry_after)

  # 4xx only: field errors as a list, identifiers as a mapping.
  errors: list[Any] | None = None
  details: dict[str, Any] | None = None
  if exc.status_code < 500:
    if isinstance(exc.details, list):
      errors = exc.details
    elif isinstance(exc.details, dict):
      details = coerce_json_safe(exc.details)
  content = _error_payload(exc.client_message, request_id=request_id, errors=errors, details=details)
  return MsgspecJSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def global_exception_handler(request: Request, exc: Exception) -> MsgspecJSONResponse:
  """Global exception handler to catch unhandled errors."""
  logger = logging.getLogger("uvicorn.error")
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return MsgspecJSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id), headers=_response_headers(request))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> MsgspecJSONResponse:
  """Reject malformed requests with 400 without echoing their payloads."""
  request_id = _request_id(request)
  sanitized_errors = sanitize_validation_errors(list(exc.errors()))
  logger = logging.getLogger("uvicorn.error")
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return MsgspecJSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_payload("Invalid request data", request_id=request_id, errors=sanitized_errors), headers=_response_headers(request))


async def http_exception_handler(request: Request, exc: HTTPException) -> MsgspecJSONResponse:
  """Handle FastAPI HTTPExceptions while avoiding leaking internal diagnostics."""
  settings = get_settings()
  request_id = _request_id(request)
  headers = {**_response_headers(request), **(exc.headers or {})}
  if exc.status_code >= 500:
    logger = logging.getLogger("uvicorn.error")
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)
    return MsgspecJSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id), headers=headers)

  if settings.log_http_4xx:
    logger = logging.getLogger("uvicorn.error")
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)

  message = exc.detail if isinstance(exc.detail, str) else "Request failed"
  return MsgspecJSONResponse(status_code=exc.status_code, content=_error_payload(message, request_id=request_id), headers=headers)
