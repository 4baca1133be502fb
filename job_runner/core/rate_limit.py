"""In-process fixed-window rate limiting for the worker endpoint."""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from starlette.requests import Request

_UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True)
class RateLimitResult:
  """Outcome of one counted request."""

  allowed: bool
  limit: int
  remaining: int
  reset_at: int  # epoch seconds when the current window ends
  retry_after: int

  def headers(self) -> dict[str, str]:
    return {"X-RateLimit-Limit": str(self.limit), "X-RateLimit-Remaining": str(self.remaining), "X-RateLimit-Reset": str(self.reset_at)}


@dataclass
class _Window:
  count: int
  reset_at: float


class FixedWindowRateLimiter:
  """Count requests per key inside fixed windows of ``window_seconds``.

  State lives in this process only, so limits are per instance. All counter
  updates happen under one lock; request handlers may run on several threads.
  """

  def __init__(self, max_requests: int, window_seconds: int, *, clock: Callable[[], float] = time.monotonic, wall_clock: Callable[[], float] = time.time, cleanup_interval: float = 60.0) -> None:
    if max_requests <= 0:
      raise ValueError("max_requests must be positive")
    if window_seconds <= 0:
      raise ValueError("window_seconds must be positive")
    self.max_requests = max_requests
    self.window_seconds = window_seconds
    self._clock = clock
    self._wall_clock = wall_clock
    self._cleanup_interval = cleanup_interval
    self._windows: dict[str, _Window] = {}
    self._lock = threading.Lock()
    self._last_cleanup = clock()

  def hit(self, key: str) -> RateLimitResult:
    """Count one request for ``key`` and report whether it is allowed."""
    with self._lock:
      now = self._clock()
      self._maybe_cleanup(now)
      window = self._windows.get(key)
      if window is None or now >= window.reset_at:
        window = _Window(count=0, reset_at=now + self.window_seconds)
        self._windows[key] = window

      window.count += 1
      seconds_left = max(window.reset_at - now, 0.0)
      reset_at = int(math.ceil(self._wall_clock() + seconds_left))
      if window.count > self.max_requests:
        return RateLimitResult(allowed=False, limit=self.max_requests, remaining=0, reset_at=reset_at, retry_after=max(int(math.ceil(seconds_left)), 1))
      return RateLimitResult(allowed=True, limit=self.max_requests, remaining=self.max_requests - window.count, reset_at=reset_at, retry_after=0)

  def reset(self) -> None:
    with self._lock:
      self._windows.clear()

  def _maybe_cleanup(self, now: float) -> None:
    # Caller holds the lock.
    if now - self._last_cleanup < self._cleanup_interval:
      return
    self._last_cleanup = now
    expired = [key for key, window in self._windows.items() if now >= window.reset_at]
    for key in expired:
      del self._windows[key]


def client_address(request: Request, *, trust_proxy_headers: bool = False) -> str:
  """Resolve the address used as the rate-limit key.

  Forwarding headers are client-controlled, so they are only honoured when the
  service is deployed behind a proxy that overwrites them.
  """
  if trust_proxy_headers:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
      first_hop = forwarded_for.split(",")[0].strip()
      if first_hop:
        return first_hop
    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
      return real_ip
  if request.client and request.client.host:
    return request.client.host
  return _UNKNOWN_CLIENT


def execute_rate_limit_key(address: str) -> str:
  return f"job-execute:{address}"
