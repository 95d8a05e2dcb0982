"""Prompt compilation for character reference sheets."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.ai.constants import FLUX_TRIGGERS, LINE_WEIGHT_PROMPTS, audience_rules
from app.ai.contracts import PlannerModel

logger = logging.getLogger(__name__)

HERO_MODEL = "flux-pro"
HERO_SIZE_CLASS = "hero-sheet"

HERO_NEGATIVE_TERMS = ("shading", "gradient", "gray", "color", "photorealistic", "3D", "inconsistent", "different characters", "blurry")

HERO_SYSTEM_PROMPT = """You create character reference sheet prompts for coloring books.

Given a character description, create a detailed prompt for a 2x2 grid showing:
- Top left: Front view
- Top right: Side view
- Bottom left: Back view
- Bottom right: 3/4 view

The character must be:
- Coloring book style with {line_weight} black outlines
- Age-appropriate for {audience} ({age_range})
- Consistent across all 4 views
- Pure black lines on white background
- No shading, no gradients

Output ONLY the prompt text, nothing else."""


@dataclass(frozen=True)
class HeroPrompt:
  compiled_prompt: str
  negative_prompt: str


async def compile_hero_prompt(model: PlannerModel, *, name: str, description: str, audience: str) -> HeroPrompt:
  """Expand a character description into a four-view reference sheet prompt."""
  rules = audience_rules(audience)
  system = HERO_SYSTEM_PROMPT.format(line_weight=rules.line_weight, audience=audience, age_range=rules.age_range)
  try:
    expanded = (await model.generate_text(system=system, prompt=f"Character: {name}\nDescription: {description}")).strip()
  except Exception:  # noqa: BLE001
    logger.warning("Hero prompt expansion failed for %s; using the raw description.", name, exc_info=True)
    expanded = ""

  compiled = ", ".join(
    [
      FLUX_TRIGGERS[HERO_MODEL],
      "character reference sheet",
      "2x2 grid showing front view, side view, back view, and 3/4 view",
      expanded or description.strip(),
      "coloring book style",
      LINE_WEIGHT_PROMPTS[rules.line_weight],
      "consistent character across all views",
      "pure black outlines on white background",
      "no shading, no gradients, no gray",
    ]
  )
  return HeroPrompt(compiled_prompt=compiled, negative_prompt=", ".join(HERO_NEGATIVE_TERMS))
