"""Style calibration for a project: render samples, then promote one to the style anchor."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from app.ai.contracts import ObjectStore, StyleDescriber
from app.ai.generator import PageGenerator
from app.ai.providers.gemini import GeminiImageClassifier, GeminiStyleDescriber, build_gemini_client
from app.ai.providers.replicate import ReplicateSynthesisService
from app.ai.safety_gate import ImageSafetyGate
from app.ai.style_calibration import CALIBRATION_SAMPLE_IDS, describe_style_anchor, generate_calibration_samples
from app.config import Settings
from app.jobs.errors import ValidationError
from app.services.storage_client import build_storage_client
from app.storage.factory import _get_projects_repo
from app.storage.projects_repo import ProjectRecord, ProjectsRepository
from app.utils.object_keys import calibration_sample_key, style_anchor_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredSample:
  sample_id: str
  variation: str
  object_key: str


@dataclass(frozen=True)
class StyleAnchor:
  object_key: str
  description: str


class StyleCalibrationService:
  """Runs the two calibration steps against a project's stored settings."""

  def __init__(self, *, projects_repo: ProjectsRepository, generator: PageGenerator, store: ObjectStore, describer: StyleDescriber, generator_max_retries: int = 2) -> None:
    self._projects_repo = projects_repo
    self._generator = generator
    self._store = store
    self._describer = describer
    self._generator_max_retries = generator_max_retries

  async def _require_project(self, project_id: str) -> ProjectRecord:
    project = await self._projects_repo.get_project(project_id)
    if project is None:
      raise LookupError(f"Project not found: {project_id}")
    return project

  async def calibrate(self, project_id: str) -> list[StoredSample]:
    """Render the calibration samples and park them under scratch keys."""
    project = await self._require_project(project_id)
    samples = await generate_calibration_samples(
      self._generator,
      subject=project.name,
      audience=project.audience,
      style_preset=project.style_preset,
      model=project.flux_model,
      max_retries=self._generator_max_retries,
    )

    stored = [
      StoredSample(sample_id=sample.sample_id, variation=sample.variation, object_key=calibration_sample_key(owner_id=project.owner_id, project_id=project.project_id, sample_id=sample.sample_id))
      for sample in samples
    ]
    await asyncio.gather(*(self._store.upload(sample.image_bytes, entry.object_key, "image/png") for sample, entry in zip(samples, stored, strict=True)))
    logger.info("Project %s calibrated with %d sample(s)", project_id, len(stored))
    return stored

  async def select_anchor(self, project_id: str, sample_id: str) -> StyleAnchor:
    """Promote one calibration sample to the project's style anchor and clear the rest."""
    if sample_id not in CALIBRATION_SAMPLE_IDS:
      raise ValidationError(f"Unknown calibration sample: {sample_id}")
    project = await self._require_project(project_id)

    sample_keys = {candidate: calibration_sample_key(owner_id=project.owner_id, project_id=project.project_id, sample_id=candidate) for candidate in CALIBRATION_SAMPLE_IDS}
    image_bytes = await self._store.download(sample_keys[sample_id])
    if image_bytes is None:
      raise LookupError(f"Calibration sample {sample_id} not found for project {project_id}")

    anchor_key = style_anchor_key(owner_id=project.owner_id, project_id=project.project_id)
    await self._store.upload(image_bytes, anchor_key, "image/png")
    description = await describe_style_anchor(self._describer, image_bytes)
    await self._projects_repo.update_style_anchor(project.project_id, anchor_key=anchor_key, description=description)

    await self._store.delete_many(list(sample_keys.values()))
    logger.info("Project %s style anchor set from sample %s", project_id, sample_id)
    return StyleAnchor(object_key=anchor_key, description=description)


def build_calibration_service(settings: Settings) -> StyleCalibrationService:
  """Wire production collaborators for style calibration."""
  gemini_client = build_gemini_client(settings.gemini_api_key)
  classifier = GeminiImageClassifier(settings.safety_model, client=gemini_client, download_timeout=settings.download_timeout_seconds)
  synthesis = ReplicateSynthesisService(api_token=settings.replicate_api_token, flux_lora_model=settings.flux_lora_model, download_timeout=settings.download_timeout_seconds)
  return StyleCalibrationService(
    projects_repo=_get_projects_repo(settings),
    generator=PageGenerator(synthesis=synthesis, safety_gate=ImageSafetyGate(classifier)),
    store=build_storage_client(settings),
    describer=GeminiStyleDescriber(settings.safety_model, client=gemini_client),
    generator_max_retries=settings.generator_max_retries,
  )
