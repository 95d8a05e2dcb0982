"""Replicate-hosted Flux synthesis plus image download."""

from __future__ import annotations

import logging
import os
import random
from typing import Any

import httpx
import replicate

from app.ai.constants import FLUX_MODELS
from app.ai.contracts import SynthesisResult
from app.jobs.errors import ConfigurationError, TransientServiceError

logger = logging.getLogger(__name__)

MAX_SEED = 2147483647


def _first_output_url(output: Any) -> str:
  """Normalize Replicate output (URL string, FileOutput, or a list of either) into one URL."""
  if isinstance(output, (list, tuple)):
    if not output:
      raise TransientServiceError("Synthesis returned no images.", category="AI_GENERATION")
    output = output[0]
  url = getattr(output, "url", output)
  if not url:
    raise TransientServiceError("Synthesis returned an empty image reference.", category="AI_GENERATION")
  return str(url)


class ReplicateSynthesisService:
  """
  Thin wrapper around the Replicate Flux models.

  Parameters
  ----------
  api_token:
      Replicate API token. Falls back to ``REPLICATE_API_TOKEN``.
  flux_lora_model:
      Model identifier for the ``flux-dev-lora`` selector; optional.
  download_timeout:
      Seconds allowed for fetching a synthesized image.
  client:
      Optional pre-configured :class:`replicate.Client`. Mainly useful for testing.
  """

  def __init__(self, *, api_token: str | None = None, flux_lora_model: str | None = None, download_timeout: float = 60.0, client: replicate.Client | None = None) -> None:
    self._api_token = api_token or os.getenv("REPLICATE_API_TOKEN")
    if not self._api_token and not client:
      raise ValueError("Replicate API token is required. Set REPLICATE_API_TOKEN or pass api_token.")
    self._flux_lora_model = flux_lora_model
    self._download_timeout = download_timeout
    self._client = client or replicate.Client(api_token=self._api_token)

  def _model_identifier(self, model: str) -> str:
    if model == "flux-dev-lora":
      if not self._flux_lora_model:
        raise ConfigurationError("LINEWORK_FLUX_LORA_MODEL must be set to use flux-dev-lora.")
      return self._flux_lora_model
    identifier = FLUX_MODELS.get(model)
    if identifier is None:
      raise ConfigurationError(f"Unknown Flux model selector: {model}")
    return identifier

  async def generate(self, *, prompt: str, negative_prompt: str, model: str, aspect_ratio: str, seed: int | None = None) -> SynthesisResult:
    identifier = self._model_identifier(model)
    resolved_seed = seed if seed is not None else random.randrange(MAX_SEED)
    params = {
      "prompt": prompt,
      "negative_prompt": negative_prompt,
      "num_inference_steps": 28,
      "guidance_scale": 3.5,
      "output_format": "png",
      "output_quality": 95,
      "seed": resolved_seed,
      "aspect_ratio": aspect_ratio,
    }
    try:
      output = await self._client.async_run(identifier, input=params)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Flux synthesis failed model=%s: %s", identifier, exc)
      raise TransientServiceError(f"Flux generation failed: {exc}", category="AI_GENERATION") from exc
    return SynthesisResult(image_url=_first_output_url(output), seed=resolved_seed)

  async def download(self, image_url: str) -> bytes:
    try:
      async with httpx.AsyncClient(timeout=self._download_timeout, follow_redirects=True) as http:
        response = await http.get(image_url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
      raise TransientServiceError(f"Failed to download image: {exc}", category="NETWORK") from exc
    return response.content
