"""Fire-and-forget hand-off of job ids to the in-process processor."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from functools import lru_cache
from typing import Any

from app.config import get_settings
from app.jobs.models import JobRecord, JobType
from app.jobs.worker import JobProcessor, build_job_processor

logger = logging.getLogger(__name__)

# Strong references keep detached tasks alive until they finish.
_BACKGROUND_TASKS: set[asyncio.Task] = set()


@lru_cache(maxsize=1)
def get_job_processor() -> JobProcessor:
  """Build the production processor once per process."""
  return build_job_processor(get_settings())


def _report_task_failure(task: asyncio.Task) -> None:
  """Done-callback error sink: log the failure and never re-raise."""
  if task.cancelled():
    logger.warning("Background task %s was cancelled.", task.get_name())
    return
  exc = task.exception()
  if exc is not None:
    logger.error("Background task %s failed: %s", task.get_name(), exc, exc_info=exc)


def _schedule(coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task:
  task = asyncio.create_task(coro, name=name)
  _BACKGROUND_TASKS.add(task)
  task.add_done_callback(_BACKGROUND_TASKS.discard)
  task.add_done_callback(_report_task_failure)
  return task


async def dispatch_job(job_id: str, *, expected_type: JobType | None = None, processor: JobProcessor | None = None) -> JobRecord | None:
  """Load a job and route it to the processor registered for its type."""
  processor = processor or get_job_processor()
  job = await processor.load_job(job_id)
  if expected_type is not None and job.job_type != expected_type:
    raise ValueError(f"Job {job_id} is a {job.job_type} job, expected {expected_type}")
  return await processor.process_job(job)


def trigger_generation_job(job_id: str, *, processor: JobProcessor | None = None) -> asyncio.Task:
  """Start processing a generation job in the background and return immediately."""
  logger.info("Triggering generation job %s", job_id)
  return _schedule(dispatch_job(job_id, expected_type="generation", processor=processor), name=f"generation-job-{job_id}")


def trigger_hero_job(job_id: str, *, processor: JobProcessor | None = None) -> asyncio.Task:
  """Start processing a hero creation job in the background and return immediately."""
  logger.info("Triggering hero job %s", job_id)
  return _schedule(dispatch_job(job_id, expected_type="hero_creation", processor=processor), name=f"hero-job-{job_id}")


def trigger_job(job_id: str, *, processor: JobProcessor | None = None) -> asyncio.Task:
  """Start processing any job in the background; the type is resolved after loading."""
  logger.info("Triggering job %s", job_id)
  return _schedule(dispatch_job(job_id, processor=processor), name=f"job-{job_id}")
