"""Dependency-injected job processor dispatch helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from app.jobs.models import JobRecord


class JobProcessorHandler(Protocol):
  """Processor contract for a concrete job type."""

  async def process(self, job: JobRecord) -> JobRecord | None:
    """Process one job record."""


@dataclass(frozen=True)
class JobProcessResult:
  """Result wrapper returned by the central dispatch function."""

  record: JobRecord | None


class JobProcessorRegistry:
  """Registry mapping job types to processor handlers."""

  def __init__(self, handlers: dict[str, JobProcessorHandler]) -> None:
    self._handlers = handlers

  def resolve(self, job_type: str) -> JobProcessorHandler:
    """Resolve the processor for a job type."""
    handler = self._handlers.get(job_type)
    if handler is None:
      raise ValueError(f"Unsupported job type: {job_type}")
    return handler


async def process_job(job: JobRecord, registry: JobProcessorRegistry) -> JobProcessResult:
  """Dispatch a job to the handler registered for its type."""
  handler = registry.resolve(job.job_type)
  record = await handler.process(job)
  return JobProcessResult(record=record)
