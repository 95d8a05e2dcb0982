"""Storage interfaces for generation jobs and their items."""

from __future__ import annotations

from typing import Protocol

from app.jobs.models import JobItemRecord, JobItemStatus, JobRecord


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def start_job(self, job_id: str) -> JobRecord | None:
    """Move a job to processing and stamp started_at."""

  async def fail_job(self, job_id: str, error_message: str) -> JobRecord | None:
    """Mark a non-terminal job failed with a message."""

  async def cancel_job(self, job_id: str) -> JobRecord | None:
    """Mark a non-terminal job cancelled. Terminal jobs are returned unchanged."""

  async def settle_job(self, job_id: str) -> JobRecord | None:
    """Move a processing job to completed, or failed when every item failed."""

  async def complete_job(self, job_id: str) -> JobRecord | None:
    """Mark a job completed regardless of counters."""

  async def list_job_items(self, job_id: str) -> list[JobItemRecord]:
    """Return every item of a job."""

  async def list_pending_items(self, job_id: str) -> list[JobItemRecord]:
    """Return items still waiting to be processed, oldest first."""

  async def update_job_item(
    self,
    item_id: str,
    *,
    status: JobItemStatus | None = None,
    retry_count: int | None = None,
    asset_key: str | None = None,
    hero_id: str | None = None,
    error_message: str | None = None,
    started_at: str | None = None,
    completed_at: str | None = None,
  ) -> JobItemRecord | None:
    """Apply partial updates to a job item."""

  async def increment_job_progress(self, job_id: str, *, succeeded: bool) -> JobRecord | None:
    """Atomically add one to completed_items or failed_items."""
