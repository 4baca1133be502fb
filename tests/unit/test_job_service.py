"""Unit tests for JobService lifecycle rules against the in-memory repository."""

from __future__ import annotations

import anyio
import pytest

from job_runner.jobs.errors import ConflictError, ExecutorError, InvalidStateError, JobNotFoundError, JobValidationError, UnknownJobTypeError
from job_runner.jobs.executors import build_default_registry
from job_runner.services.jobs import JobService
from tests.fakes import InMemoryJobsRepository, SpyExecutor, echo_registry, make_record


def _service(repo: InMemoryJobsRepository, executor: SpyExecutor | None = None) -> JobService:
  registry = echo_registry(executor) if executor is not None else build_default_registry()
  return JobService(repo, registry)


async def _claim(repo: InMemoryJobsRepository, job_id: str) -> None:
  claimed = await repo.transition_status(job_id, target="processing")
  assert claimed is not None


@pytest.mark.anyio
async def test_create_job_persists_pending_record_with_normalized_payload() -> None:
  repo = InMemoryJobsRepository()
  record = await _service(repo).create_job("purge_jobs", {"older_than_days": 7}, created_by="admin-1")

  assert record.status == "pending"
  assert record.payload == {"olderThanDays": 7, "statuses": ["completed", "failed", "cancelled"]}
  assert record.created_by == "admin-1"
  assert record.result is None and record.error_message is None and record.started_at is None
  assert [event.event_type for event in repo.events] == ["job.created"]


@pytest.mark.anyio
async def test_create_job_rejects_in_flight_duplicate_without_inserting() -> None:
  repo = InMemoryJobsRepository()
  service = _service(repo)
  first = await service.create_job("echo", {"msg": "hi"})

  with pytest.raises(ConflictError) as exc_info:
    await service.create_job("echo", {"msg": "hi"})

  assert exc_info.value.details == {"jobId": first.id}
  assert repo.create_calls == 1
  assert list(repo.jobs) == [first.id]


@pytest.mark.anyio
async def test_dedupe_by_job_type_ignores_payload_differences() -> None:
  service = _service(InMemoryJobsRepository())
  await service.create_job("purge_jobs", {"olderThanDays": 10})
  with pytest.raises(ConflictError):
    await service.create_job("purge_jobs", {"olderThanDays": 99})


@pytest.mark.anyio
async def test_dedupe_by_payload_allows_distinct_payloads_and_terminal_repeats() -> None:
  repo = InMemoryJobsRepository()
  service = _service(repo)
  first = await service.create_job("echo", {"msg": "hi"})
  await service.create_job("echo", {"msg": "bye"})

  await service.cancel_job(first.id)
  again = await service.create_job("echo", {"msg": "hi"})
  assert again.id != first.id


@pytest.mark.anyio
async def test_create_job_validates_type_and_payload() -> None:
  service = _service(InMemoryJobsRepository())
  with pytest.raises(JobValidationError, match="Unknown job type"):
    await service.create_job("send_newsletter", {})

  with pytest.raises(JobValidationError) as exc_info:
    await service.create_job("echo", {"msg": "", "extra": True})
  errors = exc_info.value.details
  assert {tuple(error["loc"]) for error in errors} == {("msg",), ("extra",)}
  assert all("input" not in error for error in errors)

  with pytest.raises(JobValidationError, match="JSON object"):
    await service.create_job("echo", ["hi"])  # type: ignore[arg-type]


@pytest.mark.anyio
async def test_execute_job_runs_executor_and_completes() -> None:
  repo = InMemoryJobsRepository()
  spy = SpyExecutor()
  service = _service(repo, spy)
  created = await service.create_job("echo", {"msg": "hi"})
  await _claim(repo, created.id)

  completed = await service.execute_job(created.id)

  assert spy.calls == 1
  assert completed.status == "completed"
  assert completed.result == {"msg": "hi"}
  assert completed.error_message is None
  assert completed.started_at is not None and completed.completed_at is not None
  assert completed.started_at <= completed.completed_at
  assert [event.event_type for event in repo.events] == ["job.created", "job.started", "job.completed"]


@pytest.mark.anyio
@pytest.mark.parametrize("status", ["pending", "completed", "failed", "cancelled"])
async def test_execute_job_outside_processing_invokes_no_executor(status: str) -> None:
  repo = InMemoryJobsRepository()
  repo.seed(make_record("job-1", status=status))
  spy = SpyExecutor()

  with pytest.raises(InvalidStateError) as exc_info:
    await _service(repo, spy).execute_job("job-1")

  assert exc_info.value.status == status
  assert spy.calls == 0
  assert repo.jobs["job-1"].status == status


@pytest.mark.anyio
async def test_execute_job_unknown_id_raises_not_found() -> None:
  with pytest.raises(JobNotFoundError):
    await _service(InMemoryJobsRepository()).execute_job("missing")


@pytest.mark.anyio
async def test_repeated_execute_runs_executor_once() -> None:
  repo = InMemoryJobsRepository()
  spy = SpyExecutor()
  service = _service(repo, spy)
  repo.seed(make_record("job-1", status="processing"))

  await service.execute_job("job-1")
  with pytest.raises(InvalidStateError):
    await service.execute_job("job-1")

  assert spy.calls == 1


@pytest.mark.anyio
async def test_concurrent_execute_runs_executor_exactly_once() -> None:
  repo = InMemoryJobsRepository()
  spy = SpyExecutor(delay=0.05)
  service = _service(repo, spy)
  repo.seed(make_record("job-1", status="processing"))
  outcomes: list[str] = []

  async def _execute() -> None:
    try:
      record = await service.execute_job("job-1")
    except InvalidStateError:
      outcomes.append("skipped")
    else:
      outcomes.append(record.status)

  async with anyio.create_task_group() as task_group:
    task_group.start_soon(_execute)
    task_group.start_soon(_execute)

  assert spy.calls == 1
  assert sorted(outcomes) == ["completed", "skipped"]


@pytest.mark.anyio
async def test_executor_failure_marks_job_failed_and_raises_generic_error() -> None:
  repo = InMemoryJobsRepository()
  spy = SpyExecutor(error=RuntimeError("boom"))
  service = _service(repo, spy)
  repo.seed(make_record("job-1", status="processing"))

  with pytest.raises(ExecutorError) as exc_info:
    await service.execute_job("job-1")

  assert exc_info.value.client_message == "Job execution failed"
  failed = repo.jobs["job-1"]
  assert failed.status == "failed"
  assert failed.error_message == "RuntimeError: boom"
  assert failed.result is None
  assert failed.completed_at is not None
  assert repo.events[-1].event_type == "job.failed"


@pytest.mark.anyio
async def test_non_object_result_is_treated_as_failure() -> None:
  repo = InMemoryJobsRepository()
  repo.seed(make_record("job-1", status="processing"))

  with pytest.raises(ExecutorError):
    await _service(repo, SpyExecutor(result=["not", "an", "object"])).execute_job("job-1")

  assert repo.jobs["job-1"].status == "failed"
  assert "expected a JSON object" in repo.jobs["job-1"].error_message


@pytest.mark.anyio
async def test_unregistered_job_type_fails_the_job() -> None:
  repo = InMemoryJobsRepository()
  repo.seed(make_record("job-1", job_type="legacy_sync", status="processing"))

  with pytest.raises(UnknownJobTypeError):
    await _service(repo).execute_job("job-1")

  assert repo.jobs["job-1"].status == "failed"
  assert repo.jobs["job-1"].error_message.startswith("UnknownJobType")


@pytest.mark.anyio
async def test_terminal_status_never_reverts() -> None:
  repo = InMemoryJobsRepository()
  service = _service(repo, SpyExecutor())
  repo.seed(make_record("job-1", status="processing"))
  await service.execute_job("job-1")

  for target in ("processing", "failed", "cancelled", "completed"):
    assert await repo.transition_status("job-1", target=target) is None
  with pytest.raises(InvalidStateError):
    await service.cancel_job("job-1")
  assert repo.jobs["job-1"].status == "completed"


@pytest.mark.anyio
async def test_cancel_only_applies_to_pending_jobs() -> None:
  repo = InMemoryJobsRepository()
  service = _service(repo)
  repo.seed(make_record("pending-1", status="pending"))
  repo.seed(make_record("processing-1", status="processing"))

  cancelled = await service.cancel_job("pending-1", cancelled_by="admin-1")
  assert cancelled.status == "cancelled"
  assert cancelled.completed_at is not None

  with pytest.raises(InvalidStateError):
    await service.cancel_job("processing-1")
  assert repo.jobs["processing-1"].status == "processing"

  with pytest.raises(JobNotFoundError):
    await service.cancel_job("missing")


@pytest.mark.anyio
async def test_retry_creates_new_pending_job_linked_to_failed_one() -> None:
  repo = InMemoryJobsRepository()
  service = _service(repo)
  repo.seed(make_record("failed-1", status="failed", error_message="RuntimeError: boom", dedupe_key="echo:abc"))

  retried = await service.retry_job("failed-1", requested_by="admin-2")

  assert retried.id != "failed-1"
  assert retried.status == "pending"
  assert retried.retry_of == "failed-1"
  assert retried.payload == {"msg": "hi"}
  assert repo.jobs["failed-1"].status == "failed"
  assert "job.retried" in [event.event_type for event in repo.events if event.job_id == "failed-1"]

  with pytest.raises(ConflictError):
    await service.retry_job("failed-1")


@pytest.mark.anyio
async def test_retry_rejects_jobs_that_did_not_fail() -> None:
  repo = InMemoryJobsRepository()
  repo.seed(make_record("done-1", status="completed", result={"msg": "hi"}))
  with pytest.raises(InvalidStateError):
    await _service(repo).retry_job("done-1")


@pytest.mark.anyio
async def test_list_jobs_filters_and_validates_paging() -> None:
  repo = InMemoryJobsRepository()
  service = _service(repo)
  repo.seed(make_record("a", status="pending", created_at="2026-01-01T00:00:00.000000Z"))
  repo.seed(make_record("b", status="failed", created_at="2026-01-02T00:00:00.000000Z"))
  repo.seed(make_record("c", job_type="purge_jobs", status="pending", created_at="2026-01-03T00:00:00.000000Z"))

  records, total = await service.list_jobs()
  assert [record.id for record in records] == ["c", "b", "a"]
  assert total == 3

  records, total = await service.list_jobs(status="pending", job_type="echo")
  assert [record.id for record in records] == ["a"]
  assert total == 1

  records, total = await service.list_jobs(limit=1, offset=1)
  assert [record.id for record in records] == ["b"]
  assert total == 3

  with pytest.raises(JobValidationError):
    await service.list_jobs(limit=0)
  with pytest.raises(JobValidationError):
    await service.list_jobs(offset=-1)
  with pytest.raises(JobValidationError):
    await service.list_jobs(status="queued")


@pytest.mark.anyio
async def test_list_job_events_requires_existing_job() -> None:
  repo = InMemoryJobsRepository()
  service = _service(repo)
  created = await service.create_job("echo", {"msg": "hi"})
  await service.cancel_job(created.id)

  events = await service.list_job_events(created.id)
  assert [event.event_type for event in events] == ["job.created", "job.cancelled"]
  with pytest.raises(JobNotFoundError):
    await service.list_job_events("missing")
