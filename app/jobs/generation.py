"""Processor for multi-page coloring book generation jobs."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from starlette.concurrency import run_in_threadpool

from app.ai.cleanup import create_thumbnail
from app.ai.constants import DEFAULT_TRIM_SIZE, PAGE_COST, THUMBNAIL_SIZE
from app.ai.contracts import ObjectStore
from app.ai.generator import PageGenerator
from app.ai.planner import CompiledSpec, PagePlanner, PlanRequest
from app.jobs.errors import ConfigurationError, PlanningError, SafetyRejection, ValidationError
from app.jobs.models import JobItemRecord, JobRecord
from app.services.billing import BillingLedger
from app.storage.jobs_repo import JobsRepository
from app.storage.projects_repo import PageVersionRecord, ProjectRecord, ProjectsRepository
from app.utils.object_keys import page_asset_key, page_thumbnail_key


def _now_iso() -> str:
  return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class GenerationJobProcessor:
  """Plans every pending page of a job, then renders them in small batches.

  One invocation makes a single pass over the pending items. Items re-queued
  after a failure stay ``pending`` for the next invocation, and the job only
  settles once none remain. Cancellation is observed between batches only, so
  items already in flight always finish. Billing is finalized once the job is
  terminal.
  """

  def __init__(
    self,
    *,
    jobs_repo: JobsRepository,
    projects_repo: ProjectsRepository,
    ledger: BillingLedger,
    planner: PagePlanner,
    generator: PageGenerator,
    store: ObjectStore,
    batch_size: int = 3,
    max_item_retries: int = 2,
    generator_max_retries: int = 2,
  ) -> None:
    if batch_size <= 0:
      raise ValueError("batch_size must be positive.")
    self._jobs_repo = jobs_repo
    self._projects_repo = projects_repo
    self._ledger = ledger
    self._planner = planner
    self._generator = generator
    self._store = store
    self._batch_size = batch_size
    self._max_item_retries = max_item_retries
    self._generator_max_retries = generator_max_retries
    self._logger = logging.getLogger(__name__)

  async def process(self, job: JobRecord) -> JobRecord | None:
    """Run one invocation of a generation job."""
    try:
      return await self._run(job)
    except Exception as exc:
      self._logger.error("Generation job %s failed", job.job_id, exc_info=True)
      await self._jobs_repo.fail_job(job.job_id, str(exc) or exc.__class__.__name__)
      raise
    finally:
      await self._finalize_billing(job)

  async def _finalize_billing(self, job: JobRecord) -> None:
    current = await self._jobs_repo.get_job(job.job_id)
    if current is not None and not current.is_terminal:
      self._logger.info("Job %s is still %s; billing stays open for the next pass.", job.job_id, current.status)
      return
    refund = await self._ledger.finalize(job.owner_id, job.job_id)
    self._logger.info("Billing finalized for job %s refund=%d", job.job_id, refund)

  async def _run(self, job: JobRecord) -> JobRecord | None:
    idea = str((job.metadata or {}).get("idea") or "").strip()
    if not idea:
      raise ConfigurationError('Job metadata missing required "idea" field')
    if not job.project_id:
      raise ConfigurationError("Generation job has no project")

    started = await self._jobs_repo.start_job(job.job_id)
    if started is None or started.status != "processing":
      self._logger.info("Job %s is %s; nothing to process.", job.job_id, started.status if started else "missing")
      return started

    project = await self._projects_repo.get_project(job.project_id)
    if project is None:
      raise ConfigurationError(f"Project not found: {job.project_id}")

    pending = await self._jobs_repo.list_pending_items(job.job_id)
    if not pending:
      # Every item settled during an earlier invocation.
      self._logger.info("Job %s has no pending items; settling.", job.job_id)
      await self._projects_repo.update_project_status(project.project_id, "ready")
      return await self._jobs_repo.settle_job(job.job_id)

    try:
      specs = await self._planner.plan(self._plan_request(idea, project, count=len(pending)))
    except SafetyRejection as exc:
      self._logger.warning("Job %s blocked by content safety: %s", job.job_id, exc)
      return await self._jobs_repo.fail_job(job.job_id, exc.job_message())
    except (PlanningError, ValidationError) as exc:
      self._logger.warning("Job %s planning failed: %s", job.job_id, exc)
      return await self._jobs_repo.fail_job(job.job_id, str(exc))

    spec_by_item = {item.item_id: spec for item, spec in zip(pending, specs, strict=True)}

    if await self._run_batches(job, project, pending, spec_by_item):
      self._logger.info("Job %s cancelled; stopping before the next batch.", job.job_id)
      return await self._jobs_repo.get_job(job.job_id)

    # A cancel can land while the last batch is in flight.
    current = await self._jobs_repo.get_job(job.job_id)
    if current is None or current.status == "cancelled":
      self._logger.info("Job %s cancelled during its final batch.", job.job_id)
      return current

    requeued = await self._jobs_repo.list_pending_items(job.job_id)
    if requeued:
      self._logger.info("Job %s has %d re-queued item(s); leaving them for the next pass.", job.job_id, len(requeued))
      return current

    await self._projects_repo.update_project_status(project.project_id, "ready")
    settled = await self._jobs_repo.settle_job(job.job_id)
    if settled is not None:
      self._logger.info("Job %s settled status=%s completed=%d failed=%d", job.job_id, settled.status, settled.completed_items, settled.failed_items)
    return settled

  async def _run_batches(self, job: JobRecord, project: ProjectRecord, items: list[JobItemRecord], spec_by_item: dict[str, CompiledSpec]) -> bool:
    """Process items in batches; return True when cancellation was observed."""
    for start in range(0, len(items), self._batch_size):
      current = await self._jobs_repo.get_job(job.job_id)
      if current is None or current.status == "cancelled":
        return True
      batch = items[start : start + self._batch_size]
      await asyncio.gather(*(self._process_item(job, project, item, spec_by_item[item.item_id]) for item in batch))
    return False

  def _plan_request(self, idea: str, project: ProjectRecord, *, count: int) -> PlanRequest:
    hero = project.hero
    return PlanRequest(
      idea=idea,
      count=count,
      audience=project.audience,
      line_weight=project.line_weight,
      complexity=project.complexity,
      hero_description=hero.compiled_prompt if hero is not None else None,
      style_anchor_description=project.style_anchor_description,
      model=project.flux_model,
    )

  async def _process_item(self, job: JobRecord, project: ProjectRecord, item: JobItemRecord, spec: CompiledSpec) -> None:
    """Render, store, and bill one page. Never raises, so siblings in the batch always finish."""
    try:
      await self._jobs_repo.update_job_item(item.item_id, status="processing", started_at=_now_iso())
      asset_key = await self._render_item(job, project, item, spec)
    except Exception as exc:  # noqa: BLE001
      try:
        await self._handle_item_failure(job, item, exc)
      except Exception:  # noqa: BLE001
        self._logger.error("Job %s item %s failed and its failure could not be recorded", job.job_id, item.item_id, exc_info=True)
      return

    # The page version is stored from here on; failures are logged and never re-queued.
    try:
      await self._ledger.record_spend(job.job_id, PAGE_COST)
      await self._jobs_repo.update_job_item(item.item_id, status="completed", asset_key=asset_key, completed_at=_now_iso())
      await self._jobs_repo.increment_job_progress(job.job_id, succeeded=True)
    except Exception:  # noqa: BLE001
      self._logger.error("Job %s item %s rendered to %s but bookkeeping failed", job.job_id, item.item_id, asset_key, exc_info=True)

  async def _render_item(self, job: JobRecord, project: ProjectRecord, item: JobItemRecord, spec: CompiledSpec) -> str:
    """Generate the page, upload it, and store it as the page's current version."""
    if not item.page_id:
      raise ConfigurationError(f"Job item {item.item_id} has no page")

    artifact = await self._generator.generate(
      compiled_prompt=spec.compiled_prompt,
      negative_prompt=spec.negative_prompt,
      audience=project.audience,
      model=project.flux_model,
      size_class=project.trim_size or DEFAULT_TRIM_SIZE,
      max_retries=self._generator_max_retries,
    )

    version = await self._projects_repo.next_version_number(item.page_id)
    asset_key = page_asset_key(owner_id=job.owner_id, project_id=project.project_id, page_id=item.page_id, version=version)
    thumbnail_key = page_thumbnail_key(owner_id=job.owner_id, project_id=project.project_id, page_id=item.page_id)
    thumbnail = await run_in_threadpool(create_thumbnail, artifact.image_bytes, THUMBNAIL_SIZE)

    await asyncio.gather(
      self._store.upload(artifact.image_bytes, asset_key, "image/png"),
      self._store.upload(thumbnail, thumbnail_key, "image/jpeg"),
    )

    await self._projects_repo.create_page_version(
      PageVersionRecord(
        page_id=item.page_id,
        version=version,
        asset_key=asset_key,
        thumbnail_key=thumbnail_key,
        compiled_prompt=spec.compiled_prompt,
        negative_prompt=spec.negative_prompt,
        seed=str(artifact.seed),
        quality_score=artifact.quality_score,
        quality_status="needs_review" if artifact.needs_review else "pass",
        edit_type="initial",
        blots_spent=PAGE_COST,
      )
    )
    await self._projects_repo.set_current_version(item.page_id, version)
    self._logger.info("Job %s page %d rendered in %d attempt(s) needs_review=%s", job.job_id, spec.page_number, artifact.attempts, artifact.needs_review)
    return asset_key

  async def _handle_item_failure(self, job: JobRecord, item: JobItemRecord, exc: Exception) -> None:
    message = str(exc) or exc.__class__.__name__
    category = getattr(exc, "category", "UNKNOWN")
    # Bad input fails the same way on every pass.
    retryable = not isinstance(exc, ValidationError | ConfigurationError)
    if retryable and item.retry_count < self._max_item_retries:
      retry = item.retry_count + 1
      self._logger.warning("Job %s item %s failed category=%s; re-queued (retry %d): %s", job.job_id, item.item_id, category, retry, message)
      await self._jobs_repo.update_job_item(item.item_id, status="pending", retry_count=retry, error_message=f"Retry {retry}: {message}")
      return

    self._logger.error("Job %s item %s failed permanently category=%s: %s", job.job_id, item.item_id, category, message, exc_info=exc)
    await self._jobs_repo.update_job_item(item.item_id, status="failed", error_message=message, completed_at=_now_iso())
    await self._jobs_repo.increment_job_progress(job.job_id, succeeded=False)
