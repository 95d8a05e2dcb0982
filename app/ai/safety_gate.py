"""Classifier-backed safety screening for generated images."""

from __future__ import annotations

import logging

from app.ai.constants import CHILD_AUDIENCES
from app.ai.contracts import ImageClassifier, SafetyVerdict

logger = logging.getLogger(__name__)

UNVERIFIED_ISSUE = "Unable to verify image safety"


def requires_screening(audience: str) -> bool:
  """Return True for the audience tiers whose images are screened."""
  return audience in CHILD_AUDIENCES


class ImageSafetyGate:
  """Screens images for sensitive audiences and fails closed on classifier errors."""

  def __init__(self, classifier: ImageClassifier) -> None:
    self._classifier = classifier

  async def check(self, image_ref: str, audience: str) -> SafetyVerdict:
    """Return a verdict for image_ref; never approves when the classifier fails."""
    if not requires_screening(audience):
      return SafetyVerdict(safe=True, issues=[], recommendation="approve")

    try:
      verdict = await self._classifier.classify_image(image_ref, audience)
    except Exception:  # noqa: BLE001
      logger.warning("Image safety classifier failed for audience=%s", audience, exc_info=True)
      return SafetyVerdict(safe=False, issues=[UNVERIFIED_ISSUE], recommendation="flag")

    if verdict.recommendation not in ("approve", "regenerate", "flag"):
      logger.warning("Image safety classifier returned unknown recommendation %r", verdict.recommendation)
      return SafetyVerdict(safe=False, issues=[UNVERIFIED_ISSUE], recommendation="flag")

    # An unsafe verdict must never carry an approve recommendation.
    if not verdict.safe and verdict.recommendation == "approve":
      return SafetyVerdict(safe=False, issues=list(verdict.issues), recommendation="flag")
    return verdict
