"""Unit tests for Pillow post-processing."""

from __future__ import annotations

import io

import pytest
from PIL import Image

from app.ai.cleanup import cleanup_image, create_thumbnail
from app.jobs.errors import ImageProcessingError
from tests.fakes import make_line_art_png


def _open(data: bytes) -> Image.Image:
  return Image.open(io.BytesIO(data))


def test_cleanup_outputs_exact_target_size_in_two_tones() -> None:
  output = cleanup_image(make_line_art_png(300, 500), target_width=600, target_height=800)
  image = _open(output)
  assert image.format == "PNG"
  assert image.size == (600, 800)
  histogram = image.convert("L").histogram()
  assert sum(histogram[1:255]) == 0


def test_cleanup_pads_with_white() -> None:
  output = cleanup_image(make_line_art_png(400, 400), target_width=400, target_height=800)
  image = _open(output).convert("L")
  # Letterbox bands above and below the square source stay white.
  assert image.getpixel((200, 5)) == 255
  assert image.getpixel((200, 795)) == 255


def test_cleanup_flattens_transparency_onto_white() -> None:
  transparent = Image.new("RGBA", (200, 200), (0, 0, 0, 0))
  buffer = io.BytesIO()
  transparent.save(buffer, format="PNG")
  image = _open(cleanup_image(buffer.getvalue(), target_width=200, target_height=200)).convert("L")
  assert image.getextrema() == (255, 255)


def test_cleanup_rejects_undecodable_bytes() -> None:
  with pytest.raises(ImageProcessingError):
    cleanup_image(b"\x89PNG garbage", target_width=10, target_height=10)


def test_thumbnail_fits_in_box_as_jpeg() -> None:
  image = _open(create_thumbnail(make_line_art_png(600, 900), 300))
  assert image.format == "JPEG"
  assert max(image.size) == 300
  assert image.size == (200, 300)
