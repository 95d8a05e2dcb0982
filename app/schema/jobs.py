from __future__ import annotations

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base

_UTC_NOW_ISO = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class Job(Base):
  __tablename__ = "jobs"
  __table_args__ = (
    CheckConstraint("completed_items + failed_items <= total_items", name="ck_jobs_item_counters"),
    Index("ix_jobs_owner_status", "owner_id", "status"),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  project_id: Mapped[str | None] = mapped_column(ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)
  job_type: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'pending'"))
  total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  completed_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
  failed_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
  metadata_json: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb"))
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  started_at: Mapped[str | None] = mapped_column(String, nullable=True)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)


class JobItem(Base):
  __tablename__ = "job_items"
  __table_args__ = (Index("ix_job_items_job_status", "job_id", "status"),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
  page_id: Mapped[str | None] = mapped_column(ForeignKey("pages.id", ondelete="SET NULL"), nullable=True)
  hero_id: Mapped[str | None] = mapped_column(String, nullable=True)
  status: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'pending'"))
  retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
  asset_key: Mapped[str | None] = mapped_column(String, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  started_at: Mapped[str | None] = mapped_column(String, nullable=True)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)
