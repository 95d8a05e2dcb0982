"""Gemini-backed planner, text moderator, image safety classifier, and style describer (google-genai SDK)."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Final

import httpx
from google import genai
from google.genai import types

from app.ai.backoff import retry_with_backoff
from app.ai.constants import audience_rules
from app.ai.contracts import SafetyVerdict

logger = logging.getLogger(__name__)

MODERATION_CATEGORIES: Final[tuple[str, ...]] = ("violence", "violence/graphic", "sexual", "sexual/minors", "hate", "self-harm")

IMAGE_SAFETY_PROMPT = """You review coloring book images for children (ages {age_range}).

Flag ANY of these:
- Scary or frightening elements
- Weapons or violence
- Monsters that could frighten children
- Dark or disturbing themes
- Inappropriate content

Respond ONLY with JSON:
{{"safe": boolean, "issues": ["list"], "recommendation": "approve"|"regenerate"|"flag"}}"""

MODERATION_PROMPT = """You are a content moderation classifier.

Score the user's text for each category with a probability between 0 and 1:
{categories}

Respond ONLY with a JSON object mapping each category name to its score."""

STYLE_DESCRIPTION_PROMPT = "You describe coloring book art styles concisely. Focus on: line weight, complexity, shapes, and overall aesthetic. Keep it to 2-3 sentences."


def strip_json_fences(text: str) -> str:
  """Remove ```json fences that models sometimes wrap around JSON output."""
  cleaned = text.strip()
  if cleaned.startswith("```"):
    cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
    if cleaned.rstrip().endswith("```"):
      cleaned = cleaned.rstrip()[:-3]
  return cleaned.strip()


def _parse_json_object(text: str | None) -> dict[str, Any]:
  if not text:
    raise RuntimeError("Gemini returned an empty response.")
  try:
    parsed = json.loads(strip_json_fences(text))
  except json.JSONDecodeError as e:
    raise RuntimeError(f"Gemini returned invalid JSON: {e}") from e
  if not isinstance(parsed, dict):
    raise RuntimeError("Gemini returned JSON that is not an object.")
  return parsed


def build_gemini_client(api_key: str | None = None) -> genai.Client:
  """Create a google-genai client from an explicit key or GEMINI_API_KEY."""
  api_key = api_key or os.getenv("GEMINI_API_KEY")
  if not api_key:
    raise ValueError("GEMINI_API_KEY environment variable is required")
  return genai.Client(api_key=api_key)


class GeminiPlannerModel:
  """Planner language model with JSON and plain-text modes."""

  def __init__(self, name: str, *, client: genai.Client, temperature: float = 0.7) -> None:
    self.name = name
    self._client = client
    self._temperature = temperature

  async def generate_json(self, *, system: str, prompt: str) -> dict[str, Any]:
    config = types.GenerateContentConfig(system_instruction=system, response_mime_type="application/json", temperature=self._temperature)
    # Use the async client to avoid blocking the asyncio event loop.
    response = await retry_with_backoff(self._client.aio.models.generate_content, model=self.name, contents=prompt, config=config)
    logger.debug("Gemini planner response:\n%s", response.text)
    return _parse_json_object(response.text)

  async def generate_text(self, *, system: str, prompt: str) -> str:
    config = types.GenerateContentConfig(system_instruction=system, temperature=self._temperature)
    response = await retry_with_backoff(self._client.aio.models.generate_content, model=self.name, contents=prompt, config=config)
    return response.text or ""


class GeminiTextModerator:
  """Scores text against moderation categories."""

  def __init__(self, name: str, *, client: genai.Client) -> None:
    self.name = name
    self._client = client

  async def score(self, text: str) -> dict[str, float]:
    system = MODERATION_PROMPT.format(categories="\n".join(f"- {category}" for category in MODERATION_CATEGORIES))
    config = types.GenerateContentConfig(system_instruction=system, response_mime_type="application/json", temperature=0.0)
    response = await retry_with_backoff(self._client.aio.models.generate_content, model=self.name, contents=text, config=config)
    raw = _parse_json_object(response.text)
    return {category: float(raw.get(category, 0.0) or 0.0) for category in MODERATION_CATEGORIES}


class GeminiImageClassifier:
  """Vision check that reviews a generated image for a young audience."""

  def __init__(self, name: str, *, client: genai.Client, download_timeout: float = 60.0) -> None:
    self.name = name
    self._client = client
    self._download_timeout = download_timeout

  async def _fetch(self, image_ref: str) -> tuple[bytes, str]:
    async with httpx.AsyncClient(timeout=self._download_timeout, follow_redirects=True) as http:
      response = await http.get(image_ref)
      response.raise_for_status()
    mime_type = (response.headers.get("content-type") or "image/png").split(";", 1)[0].strip()
    return response.content, mime_type

  async def classify_image(self, image_ref: str, audience: str) -> SafetyVerdict:
    rules = audience_rules(audience)
    image_bytes, mime_type = await self._fetch(image_ref)
    config = types.GenerateContentConfig(system_instruction=IMAGE_SAFETY_PROMPT.format(age_range=rules.age_range), response_mime_type="application/json", max_output_tokens=500, temperature=0.0)
    contents = [types.Part.from_bytes(data=image_bytes, mime_type=mime_type), f"Is this safe for {audience} (ages {rules.age_range})?"]
    response = await retry_with_backoff(self._client.aio.models.generate_content, model=self.name, contents=contents, config=config)
    raw = _parse_json_object(response.text)

    recommendation = str(raw.get("recommendation", "")).strip().lower()
    if recommendation not in ("approve", "regenerate", "flag"):
      raise RuntimeError(f"Gemini returned an unknown recommendation: {recommendation!r}")
    issues = [str(issue) for issue in raw.get("issues") or []]
    return SafetyVerdict(safe=bool(raw.get("safe")), issues=issues, recommendation=recommendation)  # type: ignore[arg-type]


class GeminiStyleDescriber:
  """Summarizes the style of a chosen calibration sample for later prompts."""

  def __init__(self, name: str, *, client: genai.Client) -> None:
    self.name = name
    self._client = client

  async def describe_style(self, image_bytes: bytes) -> str:
    config = types.GenerateContentConfig(system_instruction=STYLE_DESCRIPTION_PROMPT, max_output_tokens=150, temperature=0.2)
    contents = [types.Part.from_bytes(data=image_bytes, mime_type="image/png"), "Describe the style of this coloring book page."]
    response = await retry_with_backoff(self._client.aio.models.generate_content, model=self.name, contents=contents, config=config)
    return (response.text or "").strip()
