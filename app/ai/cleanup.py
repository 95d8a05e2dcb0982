"""Pillow post-processing that turns raw model output into print-ready line art."""

from __future__ import annotations

import io

from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError

from app.ai.constants import THUMBNAIL_SIZE
from app.jobs.errors import ImageProcessingError

_FIRST_THRESHOLD = 128
_SECOND_THRESHOLD = 200
_DENOISE_RADIUS = 0.5


def _open(image_bytes: bytes) -> Image.Image:
  try:
    image = Image.open(io.BytesIO(image_bytes))
    image.load()
  except (UnidentifiedImageError, OSError) as exc:
    raise ImageProcessingError(f"Unable to decode generated image: {exc}") from exc
  return image


def _flatten_on_white(image: Image.Image) -> Image.Image:
  """Composite transparent pixels onto white so they do not read as black."""
  if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
    rgba = image.convert("RGBA")
    background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
    return Image.alpha_composite(background, rgba).convert("RGB")
  return image


def _threshold(image: Image.Image, cutoff: int) -> Image.Image:
  return image.point(lambda value: 255 if value >= cutoff else 0)


def cleanup_image(image_bytes: bytes, *, target_width: int, target_height: int) -> bytes:
  """Return a two-tone PNG at exactly target_width x target_height on a white background."""
  image = _flatten_on_white(_open(image_bytes))
  gray = image.convert("L")

  # Two-tone, denoise, then re-threshold so the blur leaves no gray halo.
  binary = _threshold(gray, _FIRST_THRESHOLD)
  softened = binary.filter(ImageFilter.GaussianBlur(radius=_DENOISE_RADIUS))
  binary = _threshold(softened, _SECOND_THRESHOLD)

  fitted = ImageOps.contain(binary, (target_width, target_height), method=Image.Resampling.LANCZOS)
  # Resampling reintroduces gray edge pixels.
  fitted = _threshold(fitted, _FIRST_THRESHOLD)
  canvas = Image.new("L", (target_width, target_height), 255)
  offset = ((target_width - fitted.width) // 2, (target_height - fitted.height) // 2)
  canvas.paste(fitted, offset)

  output = io.BytesIO()
  canvas.save(output, format="PNG", optimize=True)
  return output.getvalue()


def create_thumbnail(image_bytes: bytes, size: int = THUMBNAIL_SIZE) -> bytes:
  """Return a JPEG preview that fits inside a size x size box."""
  image = _flatten_on_white(_open(image_bytes)).convert("RGB")
  image.thumbnail((size, size), Image.Resampling.LANCZOS)
  output = io.BytesIO()
  image.save(output, format="JPEG", quality=85)
  return output.getvalue()
