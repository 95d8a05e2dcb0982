"""Two-layer text safety check for user ideas and character descriptions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Final

from app.ai.constants import FORBIDDEN_BY_AUDIENCE, SAFE_SUGGESTIONS, audience_rules
from app.ai.contracts import TextModerator

logger = logging.getLogger(__name__)

# Lower values filter more aggressively.
MODERATION_THRESHOLDS: Final[dict[str, dict[str, float]]] = {
  "strict": {"violence": 0.05, "violence/graphic": 0.01, "sexual": 0.01, "hate": 0.05, "self-harm": 0.05},
  "moderate": {"violence": 0.20, "violence/graphic": 0.10, "sexual": 0.10, "hate": 0.20, "self-harm": 0.15},
  "standard": {"violence": 0.50, "violence/graphic": 0.30, "sexual": 0.30, "hate": 0.40, "self-harm": 0.30},
}
MINORS_THRESHOLD: Final[float] = 0.01

_VIOLATION_LABELS: Final[dict[str, str]] = {
  "violence": "violence",
  "violence/graphic": "graphic violence",
  "sexual": "sexual content",
  "hate": "hate content",
  "self-harm": "self-harm",
}


@dataclass(frozen=True)
class ContentSafetyResult:
  safe: bool
  blocked: list[str] = field(default_factory=list)
  suggestions: list[str] = field(default_factory=list)


def find_blocked_terms(text: str, audience: str) -> list[str]:
  """Return forbidden terms for the audience that occur in text."""
  lowered = text.lower()
  return [term for term in FORBIDDEN_BY_AUDIENCE.get(audience, ()) if term.lower() in lowered]


def _violations(scores: dict[str, float], safety_level: str) -> list[str]:
  thresholds = MODERATION_THRESHOLDS[safety_level]
  found: list[str] = []
  for category, limit in thresholds.items():
    if float(scores.get(category, 0.0)) > limit:
      found.append(_VIOLATION_LABELS[category])
  if float(scores.get("sexual/minors", 0.0)) > MINORS_THRESHOLD:
    found.append("child safety")
  return found


async def check_content_safety(text: str, audience: str, moderator: TextModerator | None = None) -> ContentSafetyResult:
  """Run the keyword blocklist, then the moderation classifier when one is configured."""
  rules = audience_rules(audience)
  suggestions = list(SAFE_SUGGESTIONS.get(audience, ()))

  blocked = find_blocked_terms(text, audience)
  if blocked:
    return ContentSafetyResult(safe=False, blocked=blocked, suggestions=suggestions)

  if moderator is None:
    return ContentSafetyResult(safe=True)

  try:
    scores = await moderator.score(text)
  except Exception:  # noqa: BLE001
    # Keyword screening already passed; moderation errors fail open.
    logger.warning("Text moderation unavailable; continuing with keyword screening only.", exc_info=True)
    return ContentSafetyResult(safe=True)

  violations = _violations(scores, rules.safety_level)
  if violations:
    return ContentSafetyResult(safe=False, blocked=violations, suggestions=suggestions)
  return ContentSafetyResult(safe=True)
