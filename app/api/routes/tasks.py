from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import APIRouter, Depends, status

from app.api.deps import get_job_trigger, require_task_secret
from app.api.models import TaskAcceptedResponse, TaskPayload

router = APIRouter(prefix="/tasks", tags=["tasks"])
logger = logging.getLogger(__name__)


@router.post("/process-job", status_code=status.HTTP_202_ACCEPTED, response_model=TaskAcceptedResponse, dependencies=[Depends(require_task_secret)])
async def process_job_task(payload: TaskPayload, trigger: Callable[[str], object] = Depends(get_job_trigger)) -> TaskAcceptedResponse:  # noqa: B008
  """
  Handler for task dispatchers (and local simulation).
  Hands the job id to a detached background task and answers immediately.
  """
  logger.info("Received task for job %s", payload.job_id)
  trigger(payload.job_id)
  return TaskAcceptedResponse(job_id=payload.job_id)
