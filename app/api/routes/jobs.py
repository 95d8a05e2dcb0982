import logging

from fastapi import APIRouter, Depends

from app.api.deps import get_jobs_repository
from app.api.models import JobStatusResponse
from app.services import jobs as job_service
from app.storage.jobs_repo import JobsRepository

router = APIRouter()
logger = logging.getLogger("app.api.routes.jobs")


@router.post("/{job_id}/cancel", response_model=JobStatusResponse)
async def cancel_job(  # noqa: B008
  job_id: str,
  repo: JobsRepository = Depends(get_jobs_repository),  # noqa: B008
) -> JobStatusResponse:
  """Request cancellation of a running job."""
  return await job_service.cancel_job(job_id, repo)


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(  # noqa: B008
  job_id: str,
  repo: JobsRepository = Depends(get_jobs_repository),  # noqa: B008
) -> JobStatusResponse:
  """Fetch the status, counters, and items of a job."""
  return await job_service.get_job_status(job_id, repo)
