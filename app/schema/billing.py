"""SQLAlchemy models for the credit ledger."""

from __future__ import annotations

import uuid

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class CreditBalance(Base):
  __tablename__ = "credit_balances"

  user_id: Mapped[str] = mapped_column(String, primary_key=True)
  balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
  updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class CreditJobReservation(Base):
  """Credits held for one job until billing is finalized."""

  __tablename__ = "credit_job_reservations"

  job_id: Mapped[str] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), primary_key=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  reserved: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  refunded: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  finalized_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class CreditTransaction(Base):
  """Append-only ledger entry: reserve, spend, or refund."""

  __tablename__ = "credit_transactions"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  job_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  kind: Mapped[str] = mapped_column(String, nullable=False)
  amount: Mapped[int] = mapped_column(Integer, nullable=False)
  reason: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
