"""Interfaces for the remote services the generation pipeline calls."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

Recommendation = Literal["approve", "regenerate", "flag"]


@dataclass(frozen=True)
class SynthesisResult:
  """Location of a freshly synthesized image plus the seed that produced it."""

  image_url: str
  seed: int


@dataclass(frozen=True)
class SafetyVerdict:
  """Classifier verdict for one image."""

  safe: bool
  issues: list[str] = field(default_factory=list)
  recommendation: Recommendation = "approve"


class SynthesisService(Protocol):
  """Text-to-image service that returns a downloadable image reference."""

  async def generate(self, *, prompt: str, negative_prompt: str, model: str, aspect_ratio: str, seed: int | None = None) -> SynthesisResult:
    """Synthesize one image; raise TransientServiceError on failure."""

  async def download(self, image_url: str) -> bytes:
    """Fetch raw image bytes; raise TransientServiceError on failure."""


class ImageClassifier(Protocol):
  """Vision classifier that judges whether an image suits an audience."""

  async def classify_image(self, image_ref: str, audience: str) -> SafetyVerdict:
    """Return a verdict; any exception is treated as a failed check by the caller."""


class TextModerator(Protocol):
  """Text moderation returning category scores in [0, 1]."""

  async def score(self, text: str) -> dict[str, float]:
    """Return moderation scores keyed by category name."""


class PlannerModel(Protocol):
  """Language model used to draft scene plans and hero descriptions."""

  async def generate_json(self, *, system: str, prompt: str) -> dict[str, Any]:
    """Return a parsed JSON object."""

  async def generate_text(self, *, system: str, prompt: str) -> str:
    """Return plain text."""


class ObjectStore(Protocol):
  """Durable key to bytes storage."""

  async def upload(self, data: bytes, object_name: str, content_type: str) -> None:
    """Write bytes under object_name."""

  async def download(self, object_name: str) -> bytes | None:
    """Read bytes under object_name, or None when nothing is stored there."""

  async def delete_many(self, object_names: list[str]) -> None:
    """Remove objects; missing names are ignored."""


class StyleDescriber(Protocol):
  """Vision model that summarizes the art style of a coloring page."""

  async def describe_style(self, image_bytes: bytes) -> str:
    """Return a short prose description of the page's style."""
