"""Repositories for projects, pages, and heroes using PostgreSQL."""

from __future__ import annotations

from sqlalchemy import func, select, update

from app.core.database import get_session_factory
from app.schema.heroes import Hero
from app.schema.projects import Page, PageVersion, Project
from app.storage.projects_repo import HeroesRepository, HeroRecord, PageVersionRecord, ProjectRecord, ProjectsRepository, ProjectStatus
from app.utils.ids import generate_id


def _hero_to_record(row: Hero) -> HeroRecord:
  return HeroRecord(
    hero_id=row.id,
    owner_id=row.owner_id,
    name=row.name,
    description=row.description,
    audience=row.audience,
    compiled_prompt=row.compiled_prompt,
    negative_prompt=row.negative_prompt,
    reference_key=row.reference_key,
    thumbnail_key=row.thumbnail_key,
  )


class PostgresProjectsRepository(ProjectsRepository):
  """Persist and retrieve projects and page versions from Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get_project(self, project_id: str) -> ProjectRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Project, project_id)
      if row is None:
        return None
      hero = await session.get(Hero, row.hero_id) if row.hero_id else None
      return ProjectRecord(
        project_id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        audience=row.audience,
        line_weight=row.line_weight,
        complexity=row.complexity,
        trim_size=row.trim_size,
        status=row.status,
        flux_model=row.flux_model,
        style_preset=row.style_preset,
        hero_id=row.hero_id,
        style_anchor_key=row.style_anchor_key,
        style_anchor_description=row.style_anchor_description,
        hero=_hero_to_record(hero) if hero is not None else None,
      )

  async def update_project_status(self, project_id: str, status: ProjectStatus) -> None:
    async with self._session_factory() as session:
      await session.execute(update(Project).where(Project.id == project_id).values(status=status))
      await session.commit()

  async def update_style_anchor(self, project_id: str, *, anchor_key: str, description: str) -> None:
    async with self._session_factory() as session:
      await session.execute(update(Project).where(Project.id == project_id).values(style_anchor_key=anchor_key, style_anchor_description=description))
      await session.commit()

  async def next_version_number(self, page_id: str) -> int:
    async with self._session_factory() as session:
      current = await session.scalar(select(func.max(PageVersion.version)).where(PageVersion.page_id == page_id))
      return int(current or 0) + 1

  async def create_page_version(self, record: PageVersionRecord) -> PageVersionRecord:
    version_id = record.version_id or generate_id()
    async with self._session_factory() as session:
      session.add(
        PageVersion(
          id=version_id,
          page_id=record.page_id,
          version=record.version,
          asset_key=record.asset_key,
          thumbnail_key=record.thumbnail_key,
          compiled_prompt=record.compiled_prompt,
          negative_prompt=record.negative_prompt,
          seed=record.seed,
          quality_score=record.quality_score,
          quality_status=record.quality_status,
          edit_type=record.edit_type,
          blots_spent=record.blots_spent,
        )
      )
      await session.commit()
    record.version_id = version_id
    return record

  async def set_current_version(self, page_id: str, version: int) -> None:
    async with self._session_factory() as session:
      await session.execute(update(Page).where(Page.id == page_id).values(current_version=version))
      await session.commit()


class PostgresHeroesRepository(HeroesRepository):
  """Persist heroes to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get_hero(self, hero_id: str) -> HeroRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Hero, hero_id)
      return _hero_to_record(row) if row is not None else None

  async def create_hero(self, record: HeroRecord) -> HeroRecord:
    async with self._session_factory() as session:
      row = Hero(
        id=record.hero_id,
        owner_id=record.owner_id,
        name=record.name,
        description=record.description,
        audience=record.audience,
        compiled_prompt=record.compiled_prompt,
        negative_prompt=record.negative_prompt,
        reference_key=record.reference_key or "",
        thumbnail_key=record.thumbnail_key,
      )
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return _hero_to_record(row)
