"""Processor for character reference sheet jobs."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from starlette.concurrency import run_in_threadpool

from app.ai.cleanup import create_thumbnail
from app.ai.constants import AUDIENCES, HERO_SHEET_COST, THUMBNAIL_SIZE
from app.ai.content_safety import check_content_safety
from app.ai.contracts import ObjectStore, PlannerModel, TextModerator
from app.ai.generator import PageGenerator
from app.ai.hero_prompt import HERO_MODEL, HERO_SIZE_CLASS, compile_hero_prompt
from app.ai.sanitize import sanitize_prompt
from app.jobs.errors import ConfigurationError, GenerationFailedError, SafetyRejection, ValidationError
from app.jobs.models import JobItemRecord, JobRecord
from app.services.billing import BillingLedger
from app.storage.jobs_repo import JobsRepository
from app.storage.projects_repo import HeroesRepository, HeroRecord
from app.utils.ids import generate_id
from app.utils.object_keys import hero_reference_key, hero_thumbnail_key

_REQUIRED_FIELDS = ("name", "description", "audience")


def _now_iso() -> str:
  return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class HeroJobProcessor:
  """Generates one hero reference sheet and stores it as a new hero."""

  def __init__(
    self,
    *,
    jobs_repo: JobsRepository,
    heroes_repo: HeroesRepository,
    ledger: BillingLedger,
    model: PlannerModel,
    generator: PageGenerator,
    store: ObjectStore,
    moderator: TextModerator | None = None,
    generator_max_retries: int = 2,
  ) -> None:
    self._jobs_repo = jobs_repo
    self._heroes_repo = heroes_repo
    self._ledger = ledger
    self._model = model
    self._generator = generator
    self._store = store
    self._moderator = moderator
    self._generator_max_retries = generator_max_retries
    self._logger = logging.getLogger(__name__)

  async def process(self, job: JobRecord) -> JobRecord | None:
    """Run a hero job; billing is finalized once on every exit path."""
    try:
      return await self._run(job)
    finally:
      refund = await self._ledger.finalize(job.owner_id, job.job_id)
      self._logger.info("Billing finalized for hero job %s refund=%d", job.job_id, refund)

  async def _run(self, job: JobRecord) -> JobRecord | None:
    metadata = job.metadata or {}
    missing = [name for name in _REQUIRED_FIELDS if not str(metadata.get(name) or "").strip()]
    if missing:
      message = f"Job metadata missing required fields ({', '.join(missing)})"
      await self._jobs_repo.fail_job(job.job_id, message)
      raise ConfigurationError(message)
    if str(metadata["audience"]).strip() not in AUDIENCES:
      message = f"Unsupported audience: {metadata['audience']}"
      await self._jobs_repo.fail_job(job.job_id, message)
      raise ConfigurationError(message)

    started = await self._jobs_repo.start_job(job.job_id)
    if started is None or started.status != "processing":
      return started

    items = await self._jobs_repo.list_job_items(job.job_id)
    if not items:
      return await self._jobs_repo.fail_job(job.job_id, "No job item found")
    pending = await self._jobs_repo.list_pending_items(job.job_id)
    if not pending:
      # The hero was already created (or failed) by an earlier invocation.
      self._logger.info("Hero job %s has no pending item; settling.", job.job_id)
      return await self._jobs_repo.settle_job(job.job_id)
    item = pending[0]
    await self._jobs_repo.update_job_item(item.item_id, status="processing", started_at=_now_iso())

    name = str(metadata["name"]).strip()
    description = str(metadata["description"]).strip()
    audience = str(metadata["audience"]).strip()

    try:
      hero = await self._generate_hero(job, name=name, description=description, audience=audience)
    except (SafetyRejection, GenerationFailedError, ValidationError) as exc:
      message = exc.job_message() if isinstance(exc, SafetyRejection) else str(exc)
      self._logger.warning("Hero job %s failed: %s", job.job_id, message)
      return await self._fail(job, item, message)
    except Exception as exc:
      self._logger.error("Hero job %s failed", job.job_id, exc_info=True)
      await self._fail(job, item, str(exc) or exc.__class__.__name__)
      raise

    await self._jobs_repo.update_job_item(item.item_id, status="completed", asset_key=hero.reference_key, hero_id=hero.hero_id, completed_at=_now_iso())
    await self._jobs_repo.increment_job_progress(job.job_id, succeeded=True)
    self._logger.info("Hero job %s created hero %s", job.job_id, hero.hero_id)
    return await self._jobs_repo.complete_job(job.job_id)

  async def _generate_hero(self, job: JobRecord, *, name: str, description: str, audience: str) -> HeroRecord:
    safety = await check_content_safety(f"{name} {description}", audience, self._moderator)
    if not safety.safe:
      raise SafetyRejection("Character not suitable for this audience", issues=safety.blocked, suggestions=safety.suggestions)

    prompt = await compile_hero_prompt(self._model, name=name, description=sanitize_prompt(description), audience=audience)
    artifact = await self._generator.generate(
      compiled_prompt=prompt.compiled_prompt,
      negative_prompt=prompt.negative_prompt,
      audience=audience,
      model=HERO_MODEL,
      size_class=HERO_SIZE_CLASS,
      max_retries=self._generator_max_retries,
    )

    hero_id = generate_id()
    reference_key = hero_reference_key(owner_id=job.owner_id, hero_id=hero_id)
    thumbnail_key = hero_thumbnail_key(owner_id=job.owner_id, hero_id=hero_id)
    thumbnail = await run_in_threadpool(create_thumbnail, artifact.image_bytes, THUMBNAIL_SIZE)
    await asyncio.gather(
      self._store.upload(artifact.image_bytes, reference_key, "image/png"),
      self._store.upload(thumbnail, thumbnail_key, "image/jpeg"),
    )

    hero = await self._heroes_repo.create_hero(
      HeroRecord(
        hero_id=hero_id,
        owner_id=job.owner_id,
        name=name,
        description=description,
        audience=audience,
        compiled_prompt=prompt.compiled_prompt,
        negative_prompt=prompt.negative_prompt,
        reference_key=reference_key,
        thumbnail_key=thumbnail_key,
      )
    )
    await self._ledger.record_spend(job.job_id, HERO_SHEET_COST)
    return hero

  async def _fail(self, job: JobRecord, item: JobItemRecord, message: str) -> JobRecord | None:
    await self._jobs_repo.update_job_item(item.item_id, status="failed", error_message=message, completed_at=_now_iso())
    await self._jobs_repo.increment_job_progress(job.job_id, succeeded=False)
    return await self._jobs_repo.fail_job(job.job_id, message)
