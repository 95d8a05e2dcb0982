"""Postgres-backed repository for generation jobs using SQLAlchemy."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import case, select, update

from app.core.database import get_session_factory
from app.jobs.models import TERMINAL_JOB_STATUSES, JobItemRecord, JobItemStatus, JobRecord
from app.schema.jobs import Job, JobItem
from app.storage.jobs_repo import JobsRepository


_TERMINAL = tuple(sorted(TERMINAL_JOB_STATUSES))


def _now_iso() -> str:
  return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class PostgresJobsRepository(JobsRepository):
  """Persist jobs and job items to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Job, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def _update_job_where(self, job_id: str, conditions: list, **values) -> JobRecord | None:
    """Run one conditional UPDATE ... RETURNING; fall back to a plain read when nothing matched."""
    async with self._session_factory() as session:
      stmt = update(Job).where(Job.id == job_id, *conditions).values(**values).returning(Job)
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        current = await session.get(Job, job_id)
        return self._model_to_record(current) if current is not None else None
      return self._model_to_record(row)

  async def start_job(self, job_id: str) -> JobRecord | None:
    return await self._update_job_where(job_id, [Job.status.in_(("pending", "processing"))], status="processing", started_at=_now_iso())

  async def fail_job(self, job_id: str, error_message: str) -> JobRecord | None:
    return await self._update_job_where(job_id, [Job.status.notin_(_TERMINAL)], status="failed", error_message=error_message, completed_at=_now_iso())

  async def cancel_job(self, job_id: str) -> JobRecord | None:
    return await self._update_job_where(job_id, [Job.status.notin_(_TERMINAL)], status="cancelled", completed_at=_now_iso())

  async def settle_job(self, job_id: str) -> JobRecord | None:
    # Guarded by status so a concurrent cancel is never overwritten.
    final_status = case((Job.total_items > 0, case((Job.failed_items >= Job.total_items, "failed"), else_="completed")), else_="completed")
    return await self._update_job_where(job_id, [Job.status == "processing"], status=final_status, completed_at=_now_iso())

  async def complete_job(self, job_id: str) -> JobRecord | None:
    return await self._update_job_where(job_id, [Job.status.notin_(_TERMINAL)], status="completed", completed_at=_now_iso())

  async def increment_job_progress(self, job_id: str, *, succeeded: bool) -> JobRecord | None:
    async with self._session_factory() as session:
      # Increment in SQL so concurrent item tasks never lose updates.
      if succeeded:
        values = {"completed_items": Job.completed_items + 1}
      else:
        values = {"failed_items": Job.failed_items + 1}
      stmt = update(Job).where(Job.id == job_id).values(**values).returning(Job)
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      return self._model_to_record(row) if row is not None else None

  async def list_job_items(self, job_id: str) -> list[JobItemRecord]:
    async with self._session_factory() as session:
      stmt = select(JobItem).where(JobItem.job_id == job_id).order_by(JobItem.created_at.asc(), JobItem.id.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._item_to_record(row) for row in rows]

  async def list_pending_items(self, job_id: str) -> list[JobItemRecord]:
    async with self._session_factory() as session:
      stmt = select(JobItem).where(JobItem.job_id == job_id, JobItem.status == "pending").order_by(JobItem.created_at.asc(), JobItem.id.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._item_to_record(row) for row in rows]

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
    async with self._session_factory() as session:
      row = await session.get(JobItem, item_id)
      if row is None:
        return None
      if status is not None:
        row.status = status
      if retry_count is not None:
        row.retry_count = retry_count
      if asset_key is not None:
        row.asset_key = asset_key
      if hero_id is not None:
        row.hero_id = hero_id
      if error_message is not None:
        row.error_message = error_message
      if started_at is not None:
        row.started_at = started_at
      if completed_at is not None:
        row.completed_at = completed_at
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._item_to_record(row)

  @staticmethod
  def _model_to_record(row: Job) -> JobRecord:
    return JobRecord(
      job_id=row.id,
      owner_id=row.owner_id,
      project_id=row.project_id,
      job_type=row.job_type,  # type: ignore[arg-type]
      status=row.status,  # type: ignore[arg-type]
      total_items=int(row.total_items or 0),
      completed_items=int(row.completed_items or 0),
      failed_items=int(row.failed_items or 0),
      metadata=dict(row.metadata_json or {}),
      created_at=row.created_at,
      started_at=row.started_at,
      completed_at=row.completed_at,
      error_message=row.error_message,
    )

  @staticmethod
  def _item_to_record(row: JobItem) -> JobItemRecord:
    return JobItemRecord(
      item_id=row.id,
      job_id=row.job_id,
      page_id=row.page_id,
      hero_id=row.hero_id,
      status=row.status,  # type: ignore[arg-type]
      retry_count=int(row.retry_count or 0),
      asset_key=row.asset_key,
      error_message=row.error_message,
      created_at=row.created_at,
      started_at=row.started_at,
      completed_at=row.completed_at,
    )
