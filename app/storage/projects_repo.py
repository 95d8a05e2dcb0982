"""Storage interfaces for projects, pages, and heroes."""

from __future__ import annotations

from typing import Literal, Protocol

import msgspec

ProjectStatus = Literal["draft", "generating", "ready"]
QualityStatus = Literal["pass", "needs_review"]


class HeroRecord(msgspec.Struct):
  """Recurring character with a generated reference sheet."""

  hero_id: str
  owner_id: str
  name: str
  description: str
  audience: str
  compiled_prompt: str
  negative_prompt: str | None = None
  reference_key: str | None = None
  thumbnail_key: str | None = None


class ProjectRecord(msgspec.Struct):
  """Project style settings plus the attached hero, if any."""

  project_id: str
  owner_id: str
  name: str
  audience: str
  line_weight: str
  complexity: str
  trim_size: str
  status: str
  flux_model: str = "flux-lineart"
  style_preset: str | None = None
  hero_id: str | None = None
  style_anchor_key: str | None = None
  style_anchor_description: str | None = None
  hero: HeroRecord | None = None


class PageVersionRecord(msgspec.Struct):
  """Immutable render of one page."""

  page_id: str
  version: int
  asset_key: str
  compiled_prompt: str
  thumbnail_key: str | None = None
  negative_prompt: str | None = None
  seed: str | None = None
  quality_score: int | None = None
  quality_status: str | None = None
  edit_type: str = "initial"
  blots_spent: int = 0
  version_id: str | None = None


class ProjectsRepository(Protocol):
  """Repository contract for project and page persistence."""

  async def get_project(self, project_id: str) -> ProjectRecord | None:
    """Fetch a project with its hero loaded."""

  async def update_project_status(self, project_id: str, status: ProjectStatus) -> None:
    """Set the project's lifecycle status."""

  async def update_style_anchor(self, project_id: str, *, anchor_key: str, description: str) -> None:
    """Store the chosen calibration sample and its style description on the project."""

  async def next_version_number(self, page_id: str) -> int:
    """Return one more than the highest stored version of the page."""

  async def create_page_version(self, record: PageVersionRecord) -> PageVersionRecord:
    """Insert an immutable page version."""

  async def set_current_version(self, page_id: str, version: int) -> None:
    """Point the page at a stored version."""


class HeroesRepository(Protocol):
  """Repository contract for hero persistence."""

  async def get_hero(self, hero_id: str) -> HeroRecord | None:
    """Fetch a hero by identifier."""

  async def create_hero(self, record: HeroRecord) -> HeroRecord:
    """Insert a hero row."""
