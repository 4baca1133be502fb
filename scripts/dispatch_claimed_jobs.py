"""Claim pending jobs and trigger the execute endpoint for each (cron entrypoint)."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path

import httpx

# Ensure repo root is on sys.path so local imports work when invoked directly.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from job_runner.config import get_settings
from job_runner.core.database import dispose_engine
from job_runner.services.dispatch import claim_and_dispatch
from job_runner.storage.factory import _get_jobs_repo


async def _run(*, limit: int, api_url: str) -> int:
  settings = get_settings()
  jobs_repo = _get_jobs_repo(settings)
  try:
    # Never trust environment proxy variables for internal dispatch.
    async with httpx.AsyncClient(trust_env=False) as client:
      outcomes = await claim_and_dispatch(
        jobs_repo,
        client,
        api_url=api_url,
        secret=settings.job_runner_secret or "",
        limit=limit,
        timeout=float(settings.execute_timeout_seconds),
        stuck_after=timedelta(seconds=settings.stuck_job_timeout_seconds),
      )
  finally:
    await dispose_engine()

  for outcome in outcomes:
    state = "skipped" if outcome.skipped else ("ok" if outcome.ok else f"error ({outcome.error})")
    print(f"- {outcome.job_id}: {state}")
  return 0 if all(outcome.ok for outcome in outcomes) else 1


def main() -> None:
  """Parse CLI flags, dispatch one batch and exit non-zero on any failed execution."""
  parser = argparse.ArgumentParser(description="Claim pending background jobs and call the execute endpoint for each.")
  parser.add_argument("--limit", type=int, default=1, help="Maximum number of pending jobs to claim in this run.")
  parser.add_argument("--api-url", default=None, help="Base URL of the job runner API (defaults to JOB_RUNNER_API_URL).")
  args = parser.parse_args()

  logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
  api_url = args.api_url or get_settings().api_url
  if not api_url:
    print("ERROR: JOB_RUNNER_API_URL (or --api-url) must be set.")
    sys.exit(2)
  if args.limit < 1:
    print("ERROR: --limit must be at least 1.")
    sys.exit(2)

  sys.exit(asyncio.run(_run(limit=args.limit, api_url=api_url)))


if __name__ == "__main__":
  main()
