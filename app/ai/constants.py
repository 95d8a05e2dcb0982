"""Product constants for coloring-page generation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Literal

Audience = Literal["toddler", "children", "tween", "teen", "adult"]
LineWeight = Literal["thick", "medium", "fine"]
Complexity = Literal["minimal", "moderate", "detailed", "intricate"]
SafetyLevel = Literal["strict", "moderate", "standard"]
FluxModel = Literal["flux-lineart", "flux-pro", "flux-dev-lora"]

AUDIENCES: Final[tuple[str, ...]] = ("toddler", "children", "tween", "teen", "adult")
# Generated images are screened by the vision classifier only for these audiences.
CHILD_AUDIENCES: Final[frozenset[str]] = frozenset({"toddler", "children"})


@dataclass(frozen=True)
class AudienceRules:
  line_weight: LineWeight
  complexity: Complexity
  safety_level: SafetyLevel
  age_range: str
  max_elements: int


AUDIENCE_RULES: Final[dict[str, AudienceRules]] = {
  "toddler": AudienceRules(line_weight="thick", complexity="minimal", safety_level="strict", age_range="2-4", max_elements=5),
  "children": AudienceRules(line_weight="thick", complexity="moderate", safety_level="strict", age_range="5-8", max_elements=10),
  "tween": AudienceRules(line_weight="medium", complexity="moderate", safety_level="moderate", age_range="9-12", max_elements=15),
  "teen": AudienceRules(line_weight="medium", complexity="detailed", safety_level="moderate", age_range="13-17", max_elements=20),
  "adult": AudienceRules(line_weight="fine", complexity="intricate", safety_level="standard", age_range="18+", max_elements=30),
}


@dataclass(frozen=True)
class SizeClass:
  width: int
  height: int
  aspect_ratio: str


# Print trim sizes at 300 DPI plus the square hero reference sheet.
SIZE_CLASSES: Final[dict[str, SizeClass]] = {
  "8.5x11": SizeClass(width=2550, height=3300, aspect_ratio="3:4"),
  "8.5x8.5": SizeClass(width=2550, height=2550, aspect_ratio="1:1"),
  "6x9": SizeClass(width=1800, height=2700, aspect_ratio="2:3"),
  "hero-sheet": SizeClass(width=1536, height=1536, aspect_ratio="1:1"),
}
DEFAULT_TRIM_SIZE: Final[str] = "8.5x11"

FLUX_MODELS: Final[dict[str, str]] = {
  "flux-lineart": "cuuupid/flux-lineart",
  "flux-pro": "black-forest-labs/flux-1.1-pro",
}

FLUX_TRIGGERS: Final[dict[str, str]] = {
  "flux-lineart": "line art, black and white, coloring book page",
  "flux-dev-lora": "c0l0ringb00k, coloring book page, black and white line art",
  "flux-pro": "coloring book illustration, clean black outlines on white background",
}

LINE_WEIGHT_PROMPTS: Final[dict[str, str]] = {
  "thick": "bold thick black outlines, 6-8 pixel line weight, chunky shapes, prominent lines",
  "medium": "clean medium black outlines, 3-5 pixel line weight, balanced detail",
  "fine": "delicate fine black outlines, 1-3 pixel line weight, intricate details",
}

COMPLEXITY_PROMPTS: Final[dict[str, str]] = {
  "minimal": "3-5 main elements only, large simple shapes, maximum white space",
  "moderate": "5-10 elements, some decorative detail, balanced composition",
  "detailed": "10-20 elements, patterns and decorative elements",
  "intricate": "20+ elements, fine patterns, mandala-level detail",
}

# Credit costs charged per finished artifact.
PAGE_COST: Final[int] = 5
HERO_SHEET_COST: Final[int] = 8

# Generator-internal attempt policy.
GENERATOR_MAX_RETRIES: Final[int] = 2
GENERATOR_MAX_RETRIES_LIMIT: Final[int] = 10
RETRY_DELAYS: Final[tuple[float, ...]] = (1.0, 2.0, 4.0)

THUMBNAIL_SIZE: Final[int] = 300

FORBIDDEN_BY_AUDIENCE: Final[dict[str, tuple[str, ...]]] = {
  "toddler": (
    "scary", "monster", "weapon", "gun", "sword", "knife", "fight", "attack",
    "blood", "violence", "war", "battle", "kill", "dead", "death",
    "ghost", "zombie", "skeleton", "skull", "demon", "devil", "witch",
    "vampire", "werewolf", "spider", "snake", "shark",
    "fire", "explosion", "danger", "falling", "drowning",
    "crying", "sad", "angry", "screaming", "nightmare", "terrified",
    "adult", "sexy", "naked", "beer", "wine", "cigarette",
  ),
  "children": (
    "scary monster", "realistic weapon", "blood", "gore", "death scene",
    "violence", "fighting", "war", "battle", "killing",
    "horror", "zombie", "demon", "devil", "evil spirit",
    "frightening", "terrifying", "nightmare",
    "adult content", "romance", "kissing", "sexy",
    "drug", "alcohol", "smoking", "gambling",
  ),
  "tween": (
    "graphic violence", "gore", "blood", "death",
    "adult content", "sexual", "suggestive",
    "drug use", "alcohol", "smoking",
    "self-harm", "suicide", "eating disorder",
  ),
  "teen": (
    "explicit violence", "gore", "torture",
    "sexual content", "nudity", "pornographic",
    "drug use", "drug paraphernalia",
    "self-harm", "suicide methods",
    "hate symbols", "extremist content",
  ),
  "adult": (
    "explicit sexual content", "pornography",
    "child exploitation", "CSAM",
    "hate symbols", "extremist propaganda",
    "real violence", "torture",
    "illegal content", "drug manufacturing",
  ),
}

SAFE_SUGGESTIONS: Final[dict[str, tuple[str, ...]]] = {
  "toddler": ('Try: "cute farm animals playing"', 'Try: "happy vehicles in a town"', 'Try: "friendly dinosaur with flowers"'),
  "children": ('Try: "brave knight saving a friendly dragon"', 'Try: "underwater mermaid palace"', 'Try: "space adventure with rockets"'),
  "tween": ('Try: "fantasy castle with mythical creatures"', 'Try: "sports action scene"', 'Try: "ocean wildlife adventure"'),
  "teen": ('Try: "anime-style character portrait"', 'Try: "geometric abstract patterns"', 'Try: "gothic architecture scene"'),
  "adult": ('Try: "intricate mandala pattern"', 'Try: "botanical garden illustration"', 'Try: "art nouveau decorative design"'),
}


def audience_rules(audience: str) -> AudienceRules:
  """Return the derivation rules for an audience tag."""
  rules = AUDIENCE_RULES.get(audience)
  if rules is None:
    raise ValueError(f"Unsupported audience: {audience}")
  return rules


def resolve_size_class(size_class: str | None) -> SizeClass:
  """Return pixel dimensions for a size class, defaulting to US letter."""
  return SIZE_CLASSES.get(size_class or DEFAULT_TRIM_SIZE, SIZE_CLASSES[DEFAULT_TRIM_SIZE])
