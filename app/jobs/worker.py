"""Job processor wiring: builds collaborators from settings and routes jobs by type."""

from __future__ import annotations

import logging

from app.ai.generator import PageGenerator
from app.ai.planner import PagePlanner
from app.ai.providers.gemini import GeminiImageClassifier, GeminiPlannerModel, GeminiTextModerator, build_gemini_client
from app.ai.providers.replicate import ReplicateSynthesisService
from app.ai.safety_gate import ImageSafetyGate
from app.config import Settings
from app.jobs.dispatch import JobProcessorHandler, JobProcessorRegistry
from app.jobs.dispatch import process_job as dispatch_process_job
from app.jobs.generation import GenerationJobProcessor
from app.jobs.hero import HeroJobProcessor
from app.jobs.models import JobRecord
from app.services.billing import PostgresBillingLedger
from app.services.storage_client import build_storage_client
from app.storage.factory import _get_heroes_repo, _get_jobs_repo, _get_projects_repo
from app.storage.jobs_repo import JobsRepository


class JobProcessor:
  """Coordinates execution of generation and hero jobs."""

  def __init__(self, *, jobs_repo: JobsRepository, settings: Settings, registry: JobProcessorRegistry) -> None:
    self._jobs_repo = jobs_repo
    self._settings = settings
    self._registry = registry
    self._logger = logging.getLogger(__name__)

  async def process_job(self, job: JobRecord) -> JobRecord | None:
    """Execute a single job, routing by type."""
    if job.is_terminal:
      self._logger.info("Job %s already %s; skipping.", job.job_id, job.status)
      return job
    self._logger.info("Processing job %s type=%s", job.job_id, job.job_type)
    result = await dispatch_process_job(job, self._registry)
    return result.record

  async def load_job(self, job_id: str) -> JobRecord:
    """Fetch a job or raise LookupError."""
    job = await self._jobs_repo.get_job(job_id)
    if job is None:
      raise LookupError(f"Job not found: {job_id}")
    return job


def build_job_processor(settings: Settings) -> JobProcessor:
  """Wire production collaborators for every supported job type."""
  gemini_client = build_gemini_client(settings.gemini_api_key)
  planner_model = GeminiPlannerModel(settings.planner_model, client=gemini_client)
  moderator = GeminiTextModerator(settings.safety_model, client=gemini_client)
  classifier = GeminiImageClassifier(settings.safety_model, client=gemini_client, download_timeout=settings.download_timeout_seconds)
  synthesis = ReplicateSynthesisService(api_token=settings.replicate_api_token, flux_lora_model=settings.flux_lora_model, download_timeout=settings.download_timeout_seconds)
  generator = PageGenerator(synthesis=synthesis, safety_gate=ImageSafetyGate(classifier))
  store = build_storage_client(settings)
  ledger = PostgresBillingLedger()
  jobs_repo = _get_jobs_repo(settings)

  handlers: dict[str, JobProcessorHandler] = {
    "generation": GenerationJobProcessor(
      jobs_repo=jobs_repo,
      projects_repo=_get_projects_repo(settings),
      ledger=ledger,
      planner=PagePlanner(model=planner_model, moderator=moderator),
      generator=generator,
      store=store,
      batch_size=settings.batch_size,
      max_item_retries=settings.max_item_retries,
      generator_max_retries=settings.generator_max_retries,
    ),
    "hero_creation": HeroJobProcessor(
      jobs_repo=jobs_repo,
      heroes_repo=_get_heroes_repo(settings),
      ledger=ledger,
      model=planner_model,
      generator=generator,
      store=store,
      moderator=moderator,
      generator_max_retries=settings.generator_max_retries,
    ),
  }
  return JobProcessor(jobs_repo=jobs_repo, settings=settings, registry=JobProcessorRegistry(handlers))
