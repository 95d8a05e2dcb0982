"""Credit ledger: per-job spend tracking and refund of unused reservations."""

from __future__ import annotations

import datetime
import logging
from contextlib import asynccontextmanager
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session_factory
from app.schema.billing import CreditBalance, CreditJobReservation, CreditTransaction

logger = logging.getLogger(__name__)


class BillingLedger(Protocol):
  """The two ledger calls the job pipeline makes."""

  async def record_spend(self, job_id: str, amount: int) -> None:
    """Add amount to the job's spent total."""

  async def finalize(self, user_id: str, job_id: str) -> int:
    """Refund what was reserved but not spent; return the refunded amount."""


def compute_refund(*, reserved: int, spent: int, refunded: int) -> int:
  """Refund = reserved - spent - already refunded, never negative."""
  return max(int(reserved) - int(spent) - int(refunded), 0)


def _utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


@asynccontextmanager
async def _ledger_transaction(session: AsyncSession):
  """Use a SAVEPOINT when the session already has a transaction open."""
  if session.in_transaction():
    async with session.begin_nested():
      yield
    return
  async with session.begin():
    yield


async def record_job_spend(session: AsyncSession, *, job_id: str, amount: int) -> None:
  """Add amount to the reservation's spent total and append a spend entry."""
  if amount <= 0:
    raise ValueError("amount must be positive.")

  async with _ledger_transaction(session):
    # Lock the reservation row so concurrent item spends serialize.
    stmt = select(CreditJobReservation).where(CreditJobReservation.job_id == job_id).with_for_update()
    reservation = (await session.execute(stmt)).scalar_one_or_none()
    if reservation is None:
      raise LookupError(f"No credit reservation for job {job_id}")

    reservation.spent = int(reservation.spent) + int(amount)
    session.add(reservation)
    session.add(CreditTransaction(user_id=reservation.user_id, job_id=job_id, kind="spend", amount=int(amount), reason="Job item completed"))


async def finalize_job_billing(session: AsyncSession, *, user_id: str, job_id: str) -> int:
  """Refund unused credits once; later calls return 0 without touching balances."""
  async with _ledger_transaction(session):
    stmt = select(CreditJobReservation).where(CreditJobReservation.job_id == job_id).with_for_update()
    reservation = (await session.execute(stmt)).scalar_one_or_none()
    if reservation is None:
      logger.warning("No credit reservation found for job %s; nothing to refund.", job_id)
      return 0
    if reservation.finalized_at is not None:
      logger.info("Billing for job %s already finalized.", job_id)
      return 0

    refund = compute_refund(reserved=reservation.reserved, spent=reservation.spent, refunded=reservation.refunded)
    if refund > 0:
      balance_stmt = select(CreditBalance).where(CreditBalance.user_id == user_id).with_for_update()
      balance = (await session.execute(balance_stmt)).scalar_one_or_none()
      if balance is None:
        balance = CreditBalance(user_id=user_id, balance=0)
        session.add(balance)
        await session.flush()
      balance.balance = int(balance.balance) + refund
      reservation.refunded = int(reservation.refunded) + refund
      session.add(balance)
      session.add(CreditTransaction(user_id=user_id, job_id=job_id, kind="refund", amount=refund, reason="Job completed - unused credits"))

    reservation.finalized_at = _utc_now()
    session.add(reservation)

  logger.info("Finalized billing for job %s refund=%d", job_id, refund)
  return refund


class PostgresBillingLedger:
  """BillingLedger backed by the credit tables."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def record_spend(self, job_id: str, amount: int) -> None:
    async with self._session_factory() as session:
      await record_job_spend(session, job_id=job_id, amount=amount)

  async def finalize(self, user_id: str, job_id: str) -> int:
    async with self._session_factory() as session:
      return await finalize_job_billing(session, user_id=user_id, job_id=job_id)
