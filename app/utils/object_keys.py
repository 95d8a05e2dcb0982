"""Object-store key layout for generated assets."""

from __future__ import annotations


def page_asset_key(*, owner_id: str, project_id: str, page_id: str, version: int) -> str:
  return f"users/{owner_id}/projects/{project_id}/pages/{page_id}/v{version}.png"


def page_thumbnail_key(*, owner_id: str, project_id: str, page_id: str) -> str:
  # One thumbnail per page; each new version overwrites it.
  return f"users/{owner_id}/projects/{project_id}/pages/{page_id}/thumb.jpg"


def hero_reference_key(*, owner_id: str, hero_id: str) -> str:
  return f"users/{owner_id}/heroes/{hero_id}/reference.png"


def hero_thumbnail_key(*, owner_id: str, hero_id: str) -> str:
  return f"users/{owner_id}/heroes/{hero_id}/thumbnail.jpg"


def calibration_sample_key(*, owner_id: str, project_id: str, sample_id: str) -> str:
  # Scratch location; cleared once an anchor is selected.
  return f"users/{owner_id}/projects/{project_id}/calibration/temp/{sample_id}.png"


def style_anchor_key(*, owner_id: str, project_id: str) -> str:
  return f"users/{owner_id}/projects/{project_id}/style-anchor.png"
