"""Planner/compiler: expands one idea into per-page prompts with fixed style rules."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Final

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from app.ai.constants import COMPLEXITY_PROMPTS, FLUX_TRIGGERS, FORBIDDEN_BY_AUDIENCE, LINE_WEIGHT_PROMPTS, audience_rules
from app.ai.content_safety import check_content_safety
from app.ai.contracts import PlannerModel, TextModerator
from app.ai.sanitize import sanitize_prompt, validate_idea
from app.jobs.errors import PlanningError, SafetyRejection, ValidationError

logger = logging.getLogger(__name__)

# Target share of each composition type, strongest first.
COMPOSITION_TARGETS: Final[tuple[tuple[str, float], ...]] = (
  ("full-body", 0.30),
  ("close-up", 0.25),
  ("action", 0.20),
  ("environment", 0.15),
  ("pattern", 0.10),
)
LEAD_COMPOSITION: Final[str] = "full-body"
MAX_CONSECUTIVE_COMPOSITIONS: Final[int] = 2

COMPOSITION_PROMPTS: Final[dict[str, str]] = {
  "full-body": "full-body view of the main subject centered on the page",
  "close-up": "close-up portrait framing of the main subject",
  "action": "dynamic action pose showing the subject mid-movement",
  "environment": "wide scene with the subject placed inside a detailed setting",
  "pattern": "decorative repeating pattern built from the theme's motifs",
}

NEGATIVE_PROMPT_BASE: Final[tuple[str, ...]] = (
  "shading", "gradient", "gray", "color", "photorealistic", "3D", "shadow",
  "watermark", "signature", "text", "broken lines", "crosshatching", "blurry",
)

# Rules written into every compiled prompt.
LINE_ART_RULES: Final[tuple[str, ...]] = (
  "pure black line art on a pure white background",
  "no shading, no gradients, no gray tones, no textures, no filled areas",
  "all shapes fully closed so every region can be colored",
  "margin-safe composition with at least 10% empty padding on every edge",
  "a single scene on one page, no panels or collages",
  "no text, no letters, no watermark, no signature",
)

SYSTEM_PROMPT = """You are a professional coloring book page planner for print publishers.

Create {page_count} distinct, age-appropriate coloring book pages about the user's idea.

RULES:
- Pure black outlines on pure white background
- {line_weight} line weight: {line_weight_description}
- {complexity} complexity: {complexity_description}
- No shading, gradients, gray tones, textures, or fills
- All shapes must be CLOSED (suitable for coloring)
- Margin-safe composition (10% padding)
- Exactly one scene per page
- No text, watermarks, signatures

AUDIENCE: {audience} (ages {age_range})
SAFETY: {safety_level}
FORBIDDEN: {forbidden}
MAX ELEMENTS: {max_elements}

HERO: {hero}
STYLE ANCHOR: {style_anchor}

Each page MUST use the composition assigned to it:
{schedule}

Describe only what is drawn. Do not restate the style rules.

OUTPUT JSON ONLY:
{{"pages": [{{"pageNumber": 1, "sceneBrief": "Short label", "scenePrompt": "Detailed description of the drawing"}}]}}"""


class _PlannedPage(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  page_number: int | None = Field(default=None, alias="pageNumber")
  scene_brief: str = Field(alias="sceneBrief", min_length=1)
  scene_prompt: str = Field(alias="scenePrompt", min_length=1)


class _PlannerResponse(BaseModel):
  pages: list[_PlannedPage]


@dataclass(frozen=True)
class PlanRequest:
  idea: str
  count: int
  audience: str
  line_weight: str
  complexity: str
  hero_description: str | None = None
  style_anchor_description: str | None = None
  model: str = "flux-lineart"


@dataclass(frozen=True)
class CompiledSpec:
  """One rule-compliant prompt for one page; never persisted."""

  page_number: int
  scene_brief: str
  composition_type: str
  compiled_prompt: str
  negative_prompt: str
  includes_hero: bool = False


def _allocate_compositions(count: int) -> dict[str, int]:
  """Split count across composition types by largest remainder."""
  shares = [(name, count * share) for name, share in COMPOSITION_TARGETS]
  allocation = {name: math.floor(value) for name, value in shares}
  leftover = count - sum(allocation.values())
  # Stable sort keeps the strongest type first on ties.
  by_fraction = sorted(shares, key=lambda item: item[1] - math.floor(item[1]), reverse=True)
  for name, _ in by_fraction[:leftover]:
    allocation[name] += 1
  if count > 0 and allocation[LEAD_COMPOSITION] == 0:
    donor = max(allocation, key=lambda name: allocation[name])
    allocation[donor] -= 1
    allocation[LEAD_COMPOSITION] += 1
  return allocation


def _would_repeat_too_often(sequence: list[str], candidate: str) -> bool:
  tail = sequence[-MAX_CONSECUTIVE_COMPOSITIONS:]
  return len(tail) == MAX_CONSECUTIVE_COMPOSITIONS and all(tag == candidate for tag in tail)


def plan_compositions(count: int) -> list[str]:
  """Return a composition tag per page: lead with full-body, hit the target mix, avoid long runs."""
  if count <= 0:
    return []
  remaining = _allocate_compositions(count)
  order = [name for name, _ in COMPOSITION_TARGETS]
  sequence = [LEAD_COMPOSITION]
  remaining[LEAD_COMPOSITION] -= 1

  while len(sequence) < count:
    available = [name for name in order if remaining[name] > 0 and not _would_repeat_too_often(sequence, name)]
    # Prefer a change of composition whenever another type still has budget.
    varied = [name for name in available if name != sequence[-1]]
    pool = varied or available
    if pool:
      choice = max(pool, key=lambda name: (remaining[name], -order.index(name)))
      remaining[choice] -= 1
    else:
      # Only one type has budget left and it would form a run; borrow a different type.
      choice = next(name for name in order if name != sequence[-1])
    sequence.append(choice)

  verify_composition_variety(sequence)
  return sequence


def verify_composition_variety(sequence: list[str]) -> None:
  """Raise PlanningError if any composition appears more than twice in a row."""
  run = 0
  previous: str | None = None
  for tag in sequence:
    run = run + 1 if tag == previous else 1
    previous = tag
    if run > MAX_CONSECUTIVE_COMPOSITIONS:
      raise PlanningError(f"Composition '{tag}' repeats more than {MAX_CONSECUTIVE_COMPOSITIONS} times in a row.")


def build_negative_prompt(audience: str) -> str:
  """Return the base negatives plus the audience's first ten forbidden terms, de-duplicated."""
  terms = list(NEGATIVE_PROMPT_BASE) + list(FORBIDDEN_BY_AUDIENCE.get(audience, ())[:10])
  return ", ".join(dict.fromkeys(terms))


def compile_page_prompt(*, model: str, composition_type: str, scene_prompt: str, line_weight: str, complexity: str, hero_description: str | None, style_anchor_description: str | None) -> str:
  """Assemble the final prompt with every style rule spelled out."""
  parts = [FLUX_TRIGGERS[model], COMPOSITION_PROMPTS[composition_type], scene_prompt.strip().rstrip(".")]
  if hero_description:
    parts.append(f"featuring the recurring character: {hero_description.strip()}, same character with identical proportions as on every other page")
  parts.extend(LINE_ART_RULES)
  parts.append(LINE_WEIGHT_PROMPTS[line_weight])
  parts.append(COMPLEXITY_PROMPTS[complexity])
  if style_anchor_description:
    parts.append(f"match the established book style: {style_anchor_description.strip()}")
  return ", ".join(parts)


class PagePlanner:
  """Turns a project idea into exactly one CompiledSpec per requested page."""

  def __init__(self, *, model: PlannerModel, moderator: TextModerator | None = None) -> None:
    self._model = model
    self._moderator = moderator

  async def plan(self, request: PlanRequest) -> list[CompiledSpec]:
    """Plan request.count pages.

    Raises ValidationError for unusable ideas, SafetyRejection when the idea is
    blocked, and PlanningError for transport or parsing failures.
    """
    if request.count <= 0:
      raise ValidationError("Page count must be positive.")
    if request.line_weight not in LINE_WEIGHT_PROMPTS or request.complexity not in COMPLEXITY_PROMPTS:
      raise ValidationError(f"Unsupported style: line_weight={request.line_weight} complexity={request.complexity}")
    if request.model not in FLUX_TRIGGERS:
      raise ValidationError(f"Unsupported model selector: {request.model}")

    validate_idea(request.idea)
    idea = sanitize_prompt(request.idea)

    safety = await check_content_safety(idea, request.audience, self._moderator)
    if not safety.safe:
      raise SafetyRejection(f"Content not suitable for {request.audience}", issues=safety.blocked, suggestions=safety.suggestions)

    compositions = plan_compositions(request.count)
    planned = await self._draft_pages(request, idea, compositions)
    negative_prompt = build_negative_prompt(request.audience)

    specs: list[CompiledSpec] = []
    for index, (composition, page) in enumerate(zip(compositions, planned, strict=True)):
      includes_hero = bool(request.hero_description) and composition != "pattern"
      compiled = compile_page_prompt(
        model=request.model,
        composition_type=composition,
        scene_prompt=page.scene_prompt,
        line_weight=request.line_weight,
        complexity=request.complexity,
        hero_description=request.hero_description if includes_hero else None,
        style_anchor_description=request.style_anchor_description,
      )
      specs.append(CompiledSpec(page_number=index + 1, scene_brief=page.scene_brief.strip(), composition_type=composition, compiled_prompt=compiled, negative_prompt=negative_prompt, includes_hero=includes_hero))

    verify_composition_variety([spec.composition_type for spec in specs])
    return specs

  async def _draft_pages(self, request: PlanRequest, idea: str, compositions: list[str]) -> list[_PlannedPage]:
    rules = audience_rules(request.audience)
    schedule = "\n".join(f"- Page {index + 1}: {tag} ({COMPOSITION_PROMPTS[tag]})" for index, tag in enumerate(compositions))
    system = SYSTEM_PROMPT.format(
      page_count=request.count,
      line_weight=request.line_weight,
      line_weight_description=LINE_WEIGHT_PROMPTS[request.line_weight],
      complexity=request.complexity,
      complexity_description=COMPLEXITY_PROMPTS[request.complexity],
      audience=request.audience,
      age_range=rules.age_range,
      safety_level=rules.safety_level.upper(),
      forbidden=", ".join(FORBIDDEN_BY_AUDIENCE.get(request.audience, ())[:15]),
      max_elements=rules.max_elements,
      hero=(f"{request.hero_description} (include this exact character on every page except pattern pages)" if request.hero_description else "No hero character"),
      style_anchor=request.style_anchor_description or "None",
      schedule=schedule,
    )
    prompt = f'Create {request.count} coloring pages for: "{idea}"'

    try:
      payload = await self._model.generate_json(system=system, prompt=prompt)
    except Exception as exc:  # noqa: BLE001
      logger.error("Planner model call failed", exc_info=True)
      raise PlanningError("Failed to generate pages") from exc

    try:
      parsed = _PlannerResponse.model_validate(payload)
    except PydanticValidationError as exc:
      raise PlanningError(f"Planner returned malformed pages: {exc.error_count()} validation errors") from exc

    if len(parsed.pages) != request.count:
      raise PlanningError(f"Planner returned {len(parsed.pages)} pages, expected {request.count}")
    return parsed.pages
