from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.database import Base


class Hero(Base):
  """Recurring character with a generated reference sheet."""

  __tablename__ = "heroes"

  id: Mapped[str] = mapped_column(String, primary_key=True)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  name: Mapped[str] = mapped_column(Text, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False)
  audience: Mapped[str] = mapped_column(String, nullable=False)
  compiled_prompt: Mapped[str] = mapped_column(Text, nullable=False)
  negative_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
  reference_key: Mapped[str] = mapped_column(Text, nullable=False)
  thumbnail_key: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
