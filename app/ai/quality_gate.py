"""Deterministic quality checks for cleaned coloring-page bitmaps."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import Final

from PIL import Image, ImageStat, UnidentifiedImageError

from app.jobs.errors import ImageProcessingError, QualityShortfall

# Intensity thresholds on the 0-255 grayscale range.
BLACK_CEILING: Final[int] = 5
WHITE_FLOOR: Final[int] = 250
BLANK_MEAN_CEILING: Final[float] = 250.0
DENSE_MEAN_FLOOR: Final[float] = 200.0
MARGIN_PX: Final[int] = 75
MARGIN_DARK_THRESHOLD: Final[int] = 128

CHECK_NAMES: Final[tuple[str, ...]] = ("pure_black_white", "has_content", "not_too_dense", "margin_safe")


@dataclass(frozen=True)
class QualityReport:
  """Outcome of the quality gate for one image."""

  passed: bool
  score: int
  checks: dict[str, bool] = field(default_factory=dict)
  failed_checks: list[str] = field(default_factory=list)
  mean_intensity: float = 0.0

  def raise_for_shortfall(self) -> None:
    """Raise QualityShortfall when any check failed."""
    if not self.passed:
      raise QualityShortfall(self.failed_checks, self.score)


def _margin_is_clear(image: Image.Image) -> bool:
  """Return True when every pixel in the edge band is lighter than the dark threshold."""
  width, height = image.size
  band = min(MARGIN_PX, width, height)
  boxes = ((0, 0, width, band), (0, height - band, width, height), (0, 0, band, height), (width - band, 0, width, height))
  for box in boxes:
    darkest, _ = image.crop(box).getextrema()
    if darkest < MARGIN_DARK_THRESHOLD:
      return False
  return True


def run_quality_gate(image_bytes: bytes) -> QualityReport:
  """Score a processed page image; the same bytes always yield the same report."""
  try:
    with Image.open(io.BytesIO(image_bytes)) as source:
      gray = source.convert("L")
  except (UnidentifiedImageError, OSError) as exc:
    raise ImageProcessingError(f"Unable to decode image for quality check: {exc}") from exc

  darkest, brightest = gray.getextrema()
  mean = float(ImageStat.Stat(gray).mean[0])

  checks = {
    "pure_black_white": darkest <= BLACK_CEILING and brightest >= WHITE_FLOOR,
    "has_content": mean < BLANK_MEAN_CEILING,
    "not_too_dense": mean > DENSE_MEAN_FLOOR,
    "margin_safe": _margin_is_clear(gray),
  }
  failed = [name for name in CHECK_NAMES if not checks[name]]
  passed_count = len(CHECK_NAMES) - len(failed)
  score = round(passed_count / len(CHECK_NAMES) * 100)
  return QualityReport(passed=not failed, score=score, checks=checks, failed_checks=failed, mean_intensity=mean)
