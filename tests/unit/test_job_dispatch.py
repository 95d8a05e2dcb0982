"""Unit tests for job routing and the fire-and-forget trigger."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.config import get_settings
from app.jobs import trigger
from app.jobs.dispatch import JobProcessorRegistry, process_job
from app.jobs.models import JobRecord
from app.jobs.worker import JobProcessor


def _job(status: str = "pending", job_type: str = "generation") -> JobRecord:
  return JobRecord(job_id="job-7", owner_id="user-1", job_type=job_type, status=status, total_items=2, created_at="2026-01-01T00:00:00Z", project_id="proj-1")


def _processor(jobs_repo, handler: AsyncMock | None = None) -> tuple[JobProcessor, AsyncMock]:
  handler = handler or AsyncMock()
  handler.process.return_value = None
  registry = JobProcessorRegistry({"generation": handler, "hero_creation": AsyncMock()})
  return JobProcessor(jobs_repo=jobs_repo, settings=get_settings(), registry=registry), handler


async def _drain(task: asyncio.Task) -> None:
  await asyncio.gather(task, return_exceptions=True)
  # Done-callbacks run on the next loop iteration.
  await asyncio.sleep(0)


def test_registry_rejects_unknown_job_type() -> None:
  with pytest.raises(ValueError, match="Unsupported job type"):
    JobProcessorRegistry({}).resolve("upscale")


@pytest.mark.anyio
async def test_process_job_routes_by_type() -> None:
  handler = AsyncMock()
  handler.process.return_value = _job(status="completed")
  result = await process_job(_job(), JobProcessorRegistry({"generation": handler}))
  assert result.record.status == "completed"
  handler.process.assert_awaited_once()


@pytest.mark.anyio
async def test_terminal_jobs_are_skipped(jobs_repo) -> None:
  processor, handler = _processor(jobs_repo)
  job = _job(status="cancelled")
  assert await processor.process_job(job) is job
  handler.process.assert_not_awaited()


@pytest.mark.anyio
async def test_load_job_raises_for_unknown_id(jobs_repo) -> None:
  processor, _ = _processor(jobs_repo)
  with pytest.raises(LookupError):
    await processor.load_job("missing")


@pytest.mark.anyio
async def test_trigger_runs_job_in_background(jobs_repo) -> None:
  jobs_repo.add_job(_job())
  processor, handler = _processor(jobs_repo)
  task = trigger.trigger_generation_job("job-7", processor=processor)
  assert task in trigger._BACKGROUND_TASKS
  await _drain(task)
  handler.process.assert_awaited_once()
  assert task not in trigger._BACKGROUND_TASKS


@pytest.mark.anyio
async def test_trigger_failure_is_logged_not_raised(jobs_repo, caplog: pytest.LogCaptureFixture) -> None:
  caplog.set_level(logging.ERROR, logger="app.jobs.trigger")
  processor, _ = _processor(jobs_repo)
  task = trigger.trigger_job("missing", processor=processor)
  await _drain(task)
  assert isinstance(task.exception(), LookupError)
  assert any("Background task job-missing failed" in record.getMessage() for record in caplog.records)


@pytest.mark.anyio
async def test_trigger_rejects_mismatched_job_type(jobs_repo, caplog: pytest.LogCaptureFixture) -> None:
  caplog.set_level(logging.ERROR, logger="app.jobs.trigger")
  jobs_repo.add_job(_job(job_type="generation"))
  processor, handler = _processor(jobs_repo)
  task = trigger.trigger_hero_job("job-7", processor=processor)
  await _drain(task)
  assert isinstance(task.exception(), ValueError)
  handler.process.assert_not_awaited()


def test_report_task_failure_ignores_successful_tasks(caplog: pytest.LogCaptureFixture) -> None:
  task = MagicMock()
  task.cancelled.return_value = False
  task.exception.return_value = None
  trigger._report_task_failure(task)
  assert caplog.records == []
