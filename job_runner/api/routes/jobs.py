from fastapi import APIRouter, Depends, Query, status

from job_runner.api.deps import get_actor_id, get_job_service
from job_runner.api.models import CreateJobRequest, JobEnvelope, JobEventListResponse, JobListResponse, JobProgressEnvelope, Pagination
from job_runner.jobs.models import JobStatus
from job_runner.services.jobs import JobService, job_event_response_from_record, job_response_from_record

router = APIRouter()


@router.post("", response_model=JobEnvelope, status_code=status.HTTP_201_CREATED)
async def create_job(  # noqa: B008
  request: CreateJobRequest,
  actor_id: str | None = Depends(get_actor_id),  # noqa: B008
  job_service: JobService = Depends(get_job_service),  # noqa: B008
) -> JobEnvelope:
  """Enqueue a background job; 409 when an equivalent job is already in flight."""
  record = await job_service.create_job(request.job_type, request.payload, created_by=actor_id)
  return JobEnvelope(data=job_response_from_record(record), message="Job created successfully")


@router.get("", response_model=JobListResponse)
async def list_jobs(  # noqa: B008
  job_status: JobStatus | None = Query(default=None, alias="status"),  # noqa: B008
  job_type: str | None = Query(default=None, alias="jobType", min_length=1, max_length=100),  # noqa: B008
  limit: int = Query(default=20, ge=1, le=100),  # noqa: B008
  offset: int = Query(default=0, ge=0),  # noqa: B008
  job_service: JobService = Depends(get_job_service),  # noqa: B008
) -> JobListResponse:
  """List jobs newest first with optional status and type filters."""
  records, total = await job_service.list_jobs(status=job_status, job_type=job_type, limit=limit, offset=offset)
  return JobListResponse(data=[job_response_from_record(record) for record in records], pagination=Pagination.build(total=total, limit=limit, offset=offset))


@router.get("/{job_id}", response_model=JobEnvelope)
async def get_job(job_id: str, job_service: JobService = Depends(get_job_service)) -> JobEnvelope:  # noqa: B008
  record = await job_service.get_job(job_id)
  return JobEnvelope(data=job_response_from_record(record))


@router.post("/{job_id}/cancel", response_model=JobEnvelope)
async def cancel_job(  # noqa: B008
  job_id: str,
  actor_id: str | None = Depends(get_actor_id),  # noqa: B008
  job_service: JobService = Depends(get_job_service),  # noqa: B008
) -> JobEnvelope:
  """Cancel a pending job."""
  record = await job_service.cancel_job(job_id, cancelled_by=actor_id)
  return JobEnvelope(data=job_response_from_record(record), message="Job cancelled successfully")


@router.post("/{job_id}/retry", response_model=JobEnvelope, status_code=status.HTTP_201_CREATED)
async def retry_job(  # noqa: B008
  job_id: str,
  actor_id: str | None = Depends(get_actor_id),  # noqa: B008
  job_service: JobService = Depends(get_job_service),  # noqa: B008
) -> JobEnvelope:
  """Re-enqueue a failed job as a new pending job."""
  record = await job_service.retry_job(job_id, requested_by=actor_id)
  return JobEnvelope(data=job_response_from_record(record), message="Job queued for retry")


@router.get("/{job_id}/logs", response_model=JobEventListResponse)
async def list_job_logs(  # noqa: B008
  job_id: str,
  limit: int = Query(default=100, ge=1, le=500),  # noqa: B008
  job_service: JobService = Depends(get_job_service),  # noqa: B008
) -> JobEventListResponse:
  """Return the job's activity log, oldest first."""
  events = await job_service.list_job_events(job_id, limit=limit)
  return JobEventListResponse(data=[job_event_response_from_record(event) for event in events])


@router.get("/{job_id}/progress", response_model=JobProgressEnvelope)
async def get_job_progress(job_id: str, job_service: JobService = Depends(get_job_service)) -> JobProgressEnvelope:  # noqa: B008
  """Return processed/failed/total item counters and the completion percentage."""
  return JobProgressEnvelope(data=await job_service.get_job_progress(job_id))
