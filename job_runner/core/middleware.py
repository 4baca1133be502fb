import logging
import time
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

from job_runner.utils.ids import generate_request_id

logger = logging.getLogger("job_runner.core.middleware")

REQUEST_ID_HEADER = "x-request-id"


def _build_request_path(scope: Scope) -> str:
  """Build the request target for logging; query strings are kept, headers never are."""
  path = scope.get("path", "")
  query_string = scope.get("query_string", b"")
  if query_string:
    return f"{path}?{query_string.decode('latin-1')}"
  return path


class RequestLoggingMiddleware:
  """Assign a request id and log method, path, status and latency."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    # Skip non-HTTP scopes to avoid interfering with websocket or lifespan events.
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    # Store the id in scope state so exception handlers can echo it as requestId.
    request_id = generate_request_id()
    scope.setdefault("state", {})["request_id"] = request_id

    start_time = time.perf_counter()
    method = scope.get("method", "UNKNOWN")
    path = _build_request_path(scope)
    logger.info("Incoming request request_id=%s %s %s", request_id, method, path)

    status_code: int | None = None

    async def send_wrapper(message: dict[str, Any]) -> None:
      nonlocal status_code
      if message.get("type") == "http.response.start":
        status_code = message.get("status")
        response_headers = MutableHeaders(scope=message)
        if REQUEST_ID_HEADER not in response_headers:
          response_headers[REQUEST_ID_HEADER] = request_id
      await send(message)

    try:
      await self.app(scope, receive, send_wrapper)
    finally:
      process_time = (time.perf_counter() - start_time) * 1000
      logger.info("Response request_id=%s %s %s status=%s (took %.2fms)", request_id, method, path, status_code or 0, process_time)


class SecurityHeadersMiddleware:
  """Strip server fingerprinting headers and add baseline hardening headers."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    async def send_wrapper(message: dict[str, Any]) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        if "x-powered-by" in headers:
          del headers["x-powered-by"]
        if "server" in headers:
          del headers["server"]
        headers.setdefault("x-content-type-options", "nosniff")
        headers.setdefault("cache-control", "no-store")

      await send(message)

    await self.app(scope, receive, send_wrapper)
