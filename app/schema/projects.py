from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.core.database import Base


class Project(Base):
  """A coloring book: shared style settings for every page."""

  __tablename__ = "projects"

  id: Mapped[str] = mapped_column(String, primary_key=True)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  name: Mapped[str] = mapped_column(Text, nullable=False)
  audience: Mapped[str] = mapped_column(String, nullable=False)
  style_preset: Mapped[str | None] = mapped_column(String, nullable=True)
  line_weight: Mapped[str] = mapped_column(String, nullable=False)
  complexity: Mapped[str] = mapped_column(String, nullable=False)
  trim_size: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'8.5x11'"))
  flux_model: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'flux-lineart'"))
  hero_id: Mapped[str | None] = mapped_column(ForeignKey("heroes.id", ondelete="SET NULL"), nullable=True)
  style_anchor_key: Mapped[str | None] = mapped_column(String, nullable=True)
  style_anchor_description: Mapped[str | None] = mapped_column(Text, nullable=True)
  status: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'draft'"))
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

  pages: Mapped[list[Page]] = relationship("Page", back_populates="project", cascade="all, delete-orphan")


class Page(Base):
  """One page slot in a project; content lives in immutable versions."""

  __tablename__ = "pages"
  __table_args__ = (UniqueConstraint("project_id", "page_number", name="ux_pages_project_number"),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  project_id: Mapped[str] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
  page_number: Mapped[int] = mapped_column(Integer, nullable=False)
  current_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

  project: Mapped[Project] = relationship("Project", back_populates="pages")


class PageVersion(Base):
  """Immutable render of a page."""

  __tablename__ = "page_versions"
  __table_args__ = (UniqueConstraint("page_id", "version", name="ux_page_versions_page_version"),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  page_id: Mapped[str] = mapped_column(ForeignKey("pages.id", ondelete="CASCADE"), nullable=False, index=True)
  version: Mapped[int] = mapped_column(Integer, nullable=False)
  asset_key: Mapped[str] = mapped_column(Text, nullable=False)
  thumbnail_key: Mapped[str | None] = mapped_column(Text, nullable=True)
  compiled_prompt: Mapped[str] = mapped_column(Text, nullable=False)
  negative_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
  seed: Mapped[str | None] = mapped_column(String, nullable=True)
  quality_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
  quality_status: Mapped[str | None] = mapped_column(String, nullable=True)
  edit_type: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'initial'"))
  blots_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
