"""Style calibration: sample renders a user picks from to anchor a project's look."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final

from app.ai.constants import DEFAULT_TRIM_SIZE, FLUX_TRIGGERS, GENERATOR_MAX_RETRIES, LINE_WEIGHT_PROMPTS, audience_rules
from app.ai.contracts import StyleDescriber
from app.ai.generator import PageGenerator
from app.ai.planner import build_negative_prompt
from app.jobs.errors import GenerationFailedError

logger = logging.getLogger(__name__)

CALIBRATION_VARIATIONS: Final[tuple[str, ...]] = (
  "balanced interpretation",
  "more detailed with decorative accents",
  "simpler with bolder shapes",
  "more playful with curved lines",
)
CALIBRATION_SAMPLE_IDS: Final[tuple[str, ...]] = tuple(str(index + 1) for index in range(len(CALIBRATION_VARIATIONS)))

STYLE_RULES: Final[dict[str, str]] = {
  "bold-simple": "thick bold outlines, minimal detail, clean simple shapes",
  "kawaii": "cute rounded shapes, big eyes, soft curves, charming style",
  "whimsical": "flowing organic lines, magical elements, dreamy aesthetic",
  "cartoon": "classic animation style, expressive lines, dynamic poses",
  "botanical": "organic natural shapes, leaves and flowers, elegant patterns",
}

STYLE_DESCRIPTION_FALLBACK: Final[str] = "Style anchor selected for consistent page generation"


@dataclass(frozen=True)
class CalibrationSample:
  sample_id: str
  variation: str
  image_bytes: bytes


def build_calibration_prompt(*, subject: str, audience: str, style_preset: str | None, variation: str, model: str) -> str:
  """Compose the prompt for one calibration variation."""
  rules = audience_rules(audience)
  parts = [FLUX_TRIGGERS[model], subject.strip(), "coloring book page", LINE_WEIGHT_PROMPTS[rules.line_weight]]
  if style_preset:
    parts.append(STYLE_RULES.get(style_preset, f"{style_preset} style"))
  parts.extend([variation, "pure black outlines on white background", "no shading, no gradients", "closed shapes suitable for coloring"])
  return ", ".join(part for part in parts if part)


async def generate_calibration_samples(
  generator: PageGenerator,
  *,
  subject: str,
  audience: str,
  style_preset: str | None,
  model: str = "flux-lineart",
  max_retries: int = GENERATOR_MAX_RETRIES,
) -> list[CalibrationSample]:
  """Render one sample per variation, one at a time.

  A variation whose generation fails is skipped; the caller still gets the
  others. Raises GenerationFailedError when no variation produced an image.
  """
  negative_prompt = build_negative_prompt(audience)
  samples: list[CalibrationSample] = []
  last_error: GenerationFailedError | None = None
  # One Flux call at a time.
  for sample_id, variation in zip(CALIBRATION_SAMPLE_IDS, CALIBRATION_VARIATIONS, strict=True):
    prompt = build_calibration_prompt(subject=subject, audience=audience, style_preset=style_preset, variation=variation, model=model)
    try:
      artifact = await generator.generate(
        compiled_prompt=prompt,
        negative_prompt=negative_prompt,
        audience=audience,
        model=model,
        size_class=DEFAULT_TRIM_SIZE,
        max_retries=max_retries,
      )
    except GenerationFailedError as exc:
      logger.warning("Calibration sample %s (%s) failed: %s", sample_id, variation, exc)
      last_error = exc
      continue
    samples.append(CalibrationSample(sample_id=sample_id, variation=variation, image_bytes=artifact.image_bytes))

  if not samples:
    category = last_error.category if last_error is not None else "UNKNOWN"
    raise GenerationFailedError("No calibration samples could be generated", category=category, attempts=len(CALIBRATION_VARIATIONS))
  return samples


async def describe_style_anchor(describer: StyleDescriber, image_bytes: bytes) -> str:
  """Describe the chosen sample; a model failure yields a generic description."""
  try:
    description = (await describer.describe_style(image_bytes)).strip()
  except Exception:  # noqa: BLE001
    logger.warning("Style description failed; using the generic anchor description.", exc_info=True)
    return STYLE_DESCRIPTION_FALLBACK
  return description or STYLE_DESCRIPTION_FALLBACK
