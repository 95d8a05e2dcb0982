"""Unit tests for refund math and the credit ledger helpers."""

from __future__ import annotations

import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.schema.billing import CreditBalance, CreditJobReservation, CreditTransaction
from app.services.billing import compute_refund, finalize_job_billing, record_job_spend


def _session(*rows: object) -> MagicMock:
  session = MagicMock()
  session.in_transaction.return_value = False
  result = MagicMock()
  result.scalar_one_or_none.side_effect = list(rows)
  session.execute = AsyncMock(return_value=result)
  session.flush = AsyncMock()
  return session


def _added(session: MagicMock, kind: type) -> list[object]:
  return [call.args[0] for call in session.add.call_args_list if isinstance(call.args[0], kind)]


@pytest.mark.parametrize(
  ("reserved", "spent", "refunded", "expected"),
  [(25, 10, 0, 15), (25, 25, 0, 0), (25, 10, 15, 0), (10, 15, 0, 0), (0, 0, 0, 0)],
)
def test_compute_refund_is_never_negative(reserved: int, spent: int, refunded: int, expected: int) -> None:
  assert compute_refund(reserved=reserved, spent=spent, refunded=refunded) == expected


@pytest.mark.anyio
async def test_finalize_refunds_unspent_credits_once() -> None:
  reservation = CreditJobReservation(job_id="job-1", user_id="user-1", reserved=25, spent=10, refunded=0, finalized_at=None)
  balance = CreditBalance(user_id="user-1", balance=5)
  session = _session(reservation, balance)

  refund = await finalize_job_billing(session, user_id="user-1", job_id="job-1")

  assert refund == 15
  assert balance.balance == 20
  assert reservation.refunded == 15
  assert reservation.finalized_at is not None
  entries = _added(session, CreditTransaction)
  assert [(entry.kind, entry.amount) for entry in entries] == [("refund", 15)]


@pytest.mark.anyio
async def test_finalize_is_idempotent() -> None:
  reservation = CreditJobReservation(job_id="job-1", user_id="user-1", reserved=25, spent=10, refunded=15, finalized_at=datetime.datetime(2026, 1, 1, tzinfo=datetime.UTC))
  session = _session(reservation)
  assert await finalize_job_billing(session, user_id="user-1", job_id="job-1") == 0
  assert _added(session, CreditTransaction) == []


@pytest.mark.anyio
async def test_finalize_without_reservation_returns_zero() -> None:
  session = _session(None)
  assert await finalize_job_billing(session, user_id="user-1", job_id="job-1") == 0


@pytest.mark.anyio
async def test_finalize_fully_spent_job_only_stamps_reservation() -> None:
  reservation = CreditJobReservation(job_id="job-1", user_id="user-1", reserved=10, spent=10, refunded=0, finalized_at=None)
  session = _session(reservation)
  assert await finalize_job_billing(session, user_id="user-1", job_id="job-1") == 0
  assert reservation.finalized_at is not None
  assert session.execute.await_count == 1


@pytest.mark.anyio
async def test_record_spend_accumulates_and_logs_entry() -> None:
  reservation = CreditJobReservation(job_id="job-1", user_id="user-1", reserved=25, spent=5, refunded=0, finalized_at=None)
  session = _session(reservation)
  await record_job_spend(session, job_id="job-1", amount=5)
  assert reservation.spent == 10
  entries = _added(session, CreditTransaction)
  assert [(entry.kind, entry.amount, entry.job_id) for entry in entries] == [("spend", 5, "job-1")]


@pytest.mark.anyio
async def test_record_spend_validates_amount_and_reservation() -> None:
  with pytest.raises(ValueError):
    await record_job_spend(_session(), job_id="job-1", amount=0)
  with pytest.raises(LookupError):
    await record_job_spend(_session(None), job_id="job-1", amount=5)
