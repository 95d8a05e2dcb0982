"""Service helpers for reading and cancelling jobs over HTTP."""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from app.api.models import JobItemStatusResponse, JobStatusResponse
from app.config import Settings
from app.jobs.models import JobItemRecord, JobRecord
from app.storage.factory import _get_jobs_repo
from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

_JOB_NOT_FOUND_MSG = "Job not found."


def _progress(record: JobRecord) -> float:
  if record.total_items <= 0:
    return 100.0 if record.is_terminal else 0.0
  done = record.completed_items + record.failed_items
  return round(min(done / record.total_items, 1.0) * 100.0, 2)


def _job_status_from_record(record: JobRecord, items: list[JobItemRecord]) -> JobStatusResponse:
  return JobStatusResponse(
    job_id=record.job_id,
    job_type=record.job_type,
    status=record.status,
    project_id=record.project_id,
    total_items=record.total_items,
    completed_items=record.completed_items,
    failed_items=record.failed_items,
    progress=_progress(record),
    error_message=record.error_message,
    created_at=record.created_at,
    started_at=record.started_at,
    completed_at=record.completed_at,
    items=[
      JobItemStatusResponse(
        item_id=item.item_id,
        status=item.status,
        page_id=item.page_id,
        hero_id=item.hero_id,
        retry_count=item.retry_count,
        asset_key=item.asset_key,
        error_message=item.error_message,
      )
      for item in items
    ],
  )


def get_jobs_repo(settings: Settings) -> JobsRepository:
  """Dependency hook returning the configured jobs repository."""
  return _get_jobs_repo(settings)


async def get_job_status(job_id: str, repo: JobsRepository) -> JobStatusResponse:
  """Fetch the status, counters, and items of a job."""
  record = await repo.get_job(job_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_MSG)
  items = await repo.list_job_items(job_id)
  return _job_status_from_record(record, items)


async def cancel_job(job_id: str, repo: JobsRepository) -> JobStatusResponse:
  """Request cancellation; the processor stops before its next batch."""
  record = await repo.get_job(job_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_MSG)
  if record.is_terminal:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job is already finalized and cannot be cancelled.")

  updated = await repo.cancel_job(job_id)
  if updated is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_MSG)
  if updated.status != "cancelled":
    # The job reached a terminal state between the read and the update.
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job is already finalized and cannot be cancelled.")
  logger.info("Job %s cancelled by client.", job_id)
  items = await repo.list_job_items(job_id)
  return _job_status_from_record(updated, items)
