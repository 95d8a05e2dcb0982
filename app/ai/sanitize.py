"""Prompt sanitization and idea validation for user-supplied text."""

from __future__ import annotations

import re
from typing import Final

from app.jobs.errors import ValidationError

MIN_IDEA_LENGTH: Final[int] = 3
MAX_PROMPT_LENGTH: Final[int] = 500

_INJECTION_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
  re.compile(r"ignore (previous|all|above) instructions", re.IGNORECASE),
  re.compile(r"disregard (everything|all|previous)", re.IGNORECASE),
  re.compile(r"forget (everything|all|previous)", re.IGNORECASE),
  re.compile(r"new (instructions|rules|prompt):", re.IGNORECASE),
  re.compile(r"system\s*:", re.IGNORECASE),
  re.compile(r"assistant\s*:", re.IGNORECASE),
  re.compile(r"\[INST\][\s\S]*?\[/INST\]"),
  re.compile(r"<\|.*?\|>"),
  re.compile(r"```[\s\S]*?```"),
)
_UNSAFE_CHARS: Final[re.Pattern[str]] = re.compile(r"[<>{}\[\]\\]")
_WHITESPACE: Final[re.Pattern[str]] = re.compile(r"\s+")

_VISUAL_KEYWORDS: Final[re.Pattern[str]] = re.compile(
  r"\b(animal|character|scene|place|object|person|creature|plant|flower|vehicle|building|dragon|princess|robot|dinosaur|cat|dog|bird|fish|house|castle|forest|ocean|space|garden|unicorn|fairy|mermaid|rocket|train|car|truck|butterfly|bee|bear|lion|tiger|elephant|monkey|horse|bunny|rabbit|owl|fox|deer|tree|mountain|beach|park|city|farm|zoo|circus|playground|kitchen|bedroom|bathroom|school|library|museum|restaurant|store|market|picnic|party|birthday|christmas|halloween|easter|valentine|nature|landscape|portrait|pattern|mandala|geometric|abstract|floral|botanical)\b",
  re.IGNORECASE,
)


def sanitize_prompt(text: str) -> str:
  """Strip injection phrases and markup characters, collapse whitespace, cap length."""
  clean = text
  for pattern in _INJECTION_PATTERNS:
    clean = pattern.sub("", clean)
  clean = _UNSAFE_CHARS.sub("", clean)
  clean = _WHITESPACE.sub(" ", clean).strip()
  return clean[:MAX_PROMPT_LENGTH]


def validate_idea(idea: str) -> None:
  """Raise ValidationError unless idea is a reasonably sized visual description."""
  if len(idea) < MIN_IDEA_LENGTH:
    raise ValidationError("Please provide more detail")
  if len(idea) > MAX_PROMPT_LENGTH:
    raise ValidationError(f"Please shorten your description (max {MAX_PROMPT_LENGTH} characters)")
  if not _VISUAL_KEYWORDS.search(idea):
    raise ValidationError("Please describe something visual (e.g., an animal, character, scene, or object)")
