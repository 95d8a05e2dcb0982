"""Single-item generator: synthesis, cleanup, quality and safety with bounded attempts."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from starlette.concurrency import run_in_threadpool

from app.ai.cleanup import cleanup_image
from app.ai.constants import FLUX_TRIGGERS, GENERATOR_MAX_RETRIES, GENERATOR_MAX_RETRIES_LIMIT, RETRY_DELAYS, SIZE_CLASSES
from app.ai.contracts import SynthesisService
from app.ai.quality_gate import run_quality_gate
from app.ai.safety_gate import ImageSafetyGate, requires_screening
from app.jobs.errors import GenerationFailedError, ImageProcessingError, PipelineError, QualityShortfall, TransientServiceError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratedArtifact:
  """A finished, post-processed image and the signals gathered while producing it."""

  image_bytes: bytes
  seed: int
  quality_score: int
  quality_passed: bool
  safety_passed: bool
  attempts: int
  source_url: str
  quality_failures: list[str] = field(default_factory=list)
  safety_issues: list[str] = field(default_factory=list)

  @property
  def needs_review(self) -> bool:
    return not self.quality_passed or not self.safety_passed


def _backoff_delay(attempt: int) -> float:
  return RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]


class PageGenerator:
  """Produces one artifact from one compiled prompt."""

  def __init__(self, *, synthesis: SynthesisService, safety_gate: ImageSafetyGate, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
    self._synthesis = synthesis
    self._safety_gate = safety_gate
    self._sleep = sleep

  async def generate(self, *, compiled_prompt: str, negative_prompt: str, audience: str, model: str, size_class: str, max_retries: int = GENERATOR_MAX_RETRIES, seed: int | None = None) -> GeneratedArtifact:
    """Run up to max_retries + 1 attempts and return the first acceptable artifact.

    Raises ValidationError before any remote call when inputs are malformed, and
    GenerationFailedError once every attempt has failed.
    """
    self._validate(compiled_prompt=compiled_prompt, negative_prompt=negative_prompt, model=model, size_class=size_class, max_retries=max_retries)
    dimensions = SIZE_CLASSES[size_class]
    total_attempts = max_retries + 1
    last_error: PipelineError | None = None
    attempts_made = 0

    for attempt in range(total_attempts):
      attempts_made = attempt + 1
      is_last = attempt == max_retries
      try:
        synthesized = await self._synthesis.generate(prompt=compiled_prompt, negative_prompt=negative_prompt, model=model, aspect_ratio=dimensions.aspect_ratio, seed=seed)
        raw_bytes = await self._synthesis.download(synthesized.image_url)
        # Pillow work is CPU-bound; keep it off the event loop.
        processed = await run_in_threadpool(cleanup_image, raw_bytes, target_width=dimensions.width, target_height=dimensions.height)
        quality = await run_in_threadpool(run_quality_gate, processed)
      except (TransientServiceError, ImageProcessingError) as exc:
        last_error = exc
        logger.warning("Generation attempt %d/%d failed category=%s: %s", attempts_made, total_attempts, exc.category, exc)
        if is_last:
          break
        await self._sleep(_backoff_delay(attempt))
        continue

      quality_failures: list[str] = []
      try:
        quality.raise_for_shortfall()
      except QualityShortfall as shortfall:
        logger.info("Quality shortfall on attempt %d: %s", attempts_made, shortfall)
        quality_failures = shortfall.failed_checks

      safety_passed = True
      safety_issues: list[str] = []
      if requires_screening(audience):
        # Screen the unprocessed output; cleanup can hide details the classifier should see.
        verdict = await self._safety_gate.check(synthesized.image_url, audience)
        safety_passed = verdict.safe
        safety_issues = list(verdict.issues)
        if not verdict.safe and verdict.recommendation == "regenerate" and not is_last:
          logger.info("Safety gate asked to regenerate on attempt %d: %s", attempts_made, ", ".join(safety_issues))
          continue

      return GeneratedArtifact(
        image_bytes=processed,
        seed=synthesized.seed,
        quality_score=quality.score,
        quality_passed=quality.passed,
        safety_passed=safety_passed,
        attempts=attempts_made,
        source_url=synthesized.image_url,
        quality_failures=quality_failures,
        safety_issues=safety_issues,
      )

    message = str(last_error) if last_error is not None else "Max retries exceeded"
    category = last_error.category if last_error is not None else "UNKNOWN"
    raise GenerationFailedError(message, category=category, attempts=attempts_made)

  @staticmethod
  def _validate(*, compiled_prompt: str, negative_prompt: str, model: str, size_class: str, max_retries: int) -> None:
    if not compiled_prompt or not compiled_prompt.strip():
      raise ValidationError("Compiled prompt must not be empty.")
    if not negative_prompt or not negative_prompt.strip():
      raise ValidationError("Negative prompt must not be empty.")
    if isinstance(max_retries, bool) or not isinstance(max_retries, int) or not 0 <= max_retries <= GENERATOR_MAX_RETRIES_LIMIT:
      raise ValidationError(f"max_retries must be an integer between 0 and {GENERATOR_MAX_RETRIES_LIMIT}.")
    if model not in FLUX_TRIGGERS:
      raise ValidationError(f"Unsupported model selector: {model}")
    if size_class not in SIZE_CLASSES:
      raise ValidationError(f"Unsupported size class: {size_class}")
