"""Shared FastAPI dependencies for repositories, calibration, and the task trigger."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from functools import lru_cache

from fastapi import Depends, Header, HTTPException, status

from app.config import Settings, get_settings
from app.jobs.trigger import trigger_job
from app.services.calibration import StyleCalibrationService, build_calibration_service
from app.services.jobs import get_jobs_repo
from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


def get_jobs_repository(settings: Settings = Depends(get_settings)) -> JobsRepository:  # noqa: B008
  """Dependency returning the jobs repository."""
  return get_jobs_repo(settings)


def get_job_trigger() -> Callable[[str], object]:
  """Dependency returning the background trigger used by the task endpoint."""
  return trigger_job


def require_task_secret(settings: Settings = Depends(get_settings), x_linework_task_secret: str | None = Header(default=None), authorization: str | None = Header(default=None)) -> None:  # noqa: B008
  """Reject internal task calls that do not carry the shared secret."""
  # Internal task endpoints must be authenticated to avoid arbitrary job execution.
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  shared_secret_valid = secrets.compare_digest((x_linework_task_secret or ""), settings.task_secret)
  bearer_valid = secrets.compare_digest((authorization or ""), f"Bearer {settings.task_secret}")
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to an internal task endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")


@lru_cache(maxsize=1)
def _calibration_service() -> StyleCalibrationService:
  return build_calibration_service(get_settings())


def get_calibration_service() -> StyleCalibrationService:
  """Dependency returning the style calibration service."""
  return _calibration_service()
