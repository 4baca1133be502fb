from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from job_runner import __version__
from job_runner.api.models import HealthResponse
from job_runner.api.routes import jobs, worker
from job_runner.config import get_settings
from job_runner.core.exceptions import global_exception_handler, http_exception_handler, job_error_handler, request_validation_exception_handler
from job_runner.core.json import MsgspecJSONResponse
from job_runner.core.lifespan import lifespan
from job_runner.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from job_runner.jobs.errors import JobError


def create_app() -> FastAPI:
  """Build the ASGI application with handlers, middleware and routers."""
  settings = get_settings()
  docs_enabled = settings.environment not in {"production", "prod"}

  app = FastAPI(
    title="job-runner",
    version=__version__,
    default_response_class=MsgspecJSONResponse,
    lifespan=lifespan,
    docs_url="/docs" if docs_enabled else None,
    redoc_url=None,
    openapi_url="/openapi.json" if docs_enabled else None,
  )

  if settings.allowed_origins:
    app.add_middleware(
      CORSMiddleware,
      allow_origins=list(settings.allowed_origins),
      allow_credentials=True,
      allow_methods=["GET", "POST", "OPTIONS"],
      allow_headers=["content-type", "x-actor-id"],
      expose_headers=["x-request-id", "x-ratelimit-limit", "x-ratelimit-remaining", "x-ratelimit-reset", "retry-after"],
    )

  app.add_exception_handler(Exception, global_exception_handler)
  app.add_exception_handler(HTTPException, http_exception_handler)
  app.add_exception_handler(JobError, job_error_handler)
  app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

  app.add_middleware(RequestLoggingMiddleware)
  app.add_middleware(SecurityHeadersMiddleware)

  @app.get("/health", response_model=HealthResponse, include_in_schema=False)
  async def health_check() -> HealthResponse:
    """Return a simple health status."""
    return HealthResponse(status="ok", version=__version__)

  # Worker routes first so /{job_id}/execute is never shadowed by admin routes.
  app.include_router(worker.router, prefix="/jobs", tags=["worker"])
  app.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
  return app


app = create_app()
