"""Built-in job executors and the startup registry builder."""

from __future__ import annotations

import logging

from job_runner.jobs.executors.echo import EchoPayload, run_echo
from job_runner.jobs.executors.job_report import JobReportPayload, run_job_report
from job_runner.jobs.executors.purge_jobs import PurgeJobsPayload, run_purge_jobs
from job_runner.jobs.models import JobType
from job_runner.jobs.registry import DedupePolicy, ExecutorRegistry, ensure_complete

logger = logging.getLogger(__name__)


def register_executors(registry: ExecutorRegistry) -> None:
  """Register every built-in executor on the given registry."""
  registry.register(JobType.ECHO, run_echo, payload_model=EchoPayload, dedupe=DedupePolicy.PAYLOAD)
  registry.register(JobType.PURGE_JOBS, run_purge_jobs, payload_model=PurgeJobsPayload, dedupe=DedupePolicy.JOB_TYPE)
  registry.register(JobType.JOB_REPORT, run_job_report, payload_model=JobReportPayload, dedupe=DedupePolicy.PAYLOAD)


def build_default_registry() -> ExecutorRegistry:
  """Build, verify and seal the process-wide registry."""
  registry = ExecutorRegistry()
  register_executors(registry)
  ensure_complete(registry)
  registry.freeze()
  logger.info("Registered %d job executor(s): %s", len(registry.registered_types()), ", ".join(t.value for t in registry.registered_types()))
  return registry


__all__ = ["build_default_registry", "register_executors"]
