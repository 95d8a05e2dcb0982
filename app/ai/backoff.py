"""Retry helper for rate-limited model calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from google.genai import errors as genai_errors

T = TypeVar("T")
logger = logging.getLogger(__name__)

RATE_LIMIT_DELAYS: tuple[float, ...] = (5.0, 20.0, 50.0)
_RETRYABLE_CODES = {429, 503}


def is_rate_limited(exc: BaseException) -> bool:
  """Return True for quota exhaustion or temporary overload responses."""
  return isinstance(exc, genai_errors.APIError) and exc.code in _RETRYABLE_CODES


async def retry_with_backoff(func: Callable[..., Awaitable[T]], *args, delays: Sequence[float] = RATE_LIMIT_DELAYS, **kwargs) -> T:
  """
  Execute a coroutine function, retrying only rate-limit failures.

  Delays: 5s, 20s, 50s, then a final attempt whose error propagates.
  """
  for attempt, delay in enumerate(delays):
    try:
      return await func(*args, **kwargs)
    except genai_errors.APIError as exc:
      if not is_rate_limited(exc):
        raise
      logger.warning("Rate limited (attempt %d/%d, code=%s). Retrying in %.0fs...", attempt + 1, len(delays), exc.code, delay)
      await asyncio.sleep(delay)

  # Final attempt
  return await func(*args, **kwargs)
