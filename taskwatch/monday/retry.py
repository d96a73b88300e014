from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

from taskwatch.errors import FatalRemoteError, TransientRemoteError

T = TypeVar("T")

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({408, 429})

_TRANSIENT_MARKERS = (
  "rate limit",
  "ratelimit",
  "rate_limit",
  "too many requests",
  "complexity budget",
  "complexityexception",
  "timeout",
  "timed out",
  "temporarily unavailable",
)


class RetryState(enum.Enum):
  ATTEMPTING = "attempting"
  BACKOFF = "backoff"
  EXHAUSTED = "exhausted"
  SUCCEEDED = "succeeded"


class RetryDecision(enum.Enum):
  RETRYABLE = "retryable"
  FATAL = "fatal"


@dataclass(frozen=True)
class RetryPolicy:
  max_retries: int = 3
  initial_delay: float = 1.5
  multiplier: float = 2.0
  max_delay: float = 30.0

  def delay_for(self, retry_index: int) -> float:
    return min(self.initial_delay * (self.multiplier**retry_index), self.max_delay)


def is_retryable_status(status_code: int) -> bool:
  return status_code in RETRYABLE_STATUS or status_code >= 500


def is_transient_message(message: str) -> bool:
  text = (message or "").lower()
  return any(marker in text for marker in _TRANSIENT_MARKERS)


def classify_error(exc: BaseException) -> RetryDecision:
  """Pure classification, independent of the transport that raised."""
  if isinstance(exc, TransientRemoteError):
    return RetryDecision.RETRYABLE
  if isinstance(exc, FatalRemoteError):
    return RetryDecision.FATAL
  if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError, asyncio.TimeoutError)):
    return RetryDecision.RETRYABLE
  if isinstance(exc, httpx.HTTPStatusError):
    return RetryDecision.RETRYABLE if is_retryable_status(exc.response.status_code) else RetryDecision.FATAL
  return RetryDecision.FATAL


def _as_transient(exc: BaseException) -> TransientRemoteError:
  if isinstance(exc, TransientRemoteError):
    return exc
  status_code = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
  return TransientRemoteError(f"{exc.__class__.__name__}: {exc}".strip(), status_code=status_code)


class RetryRun:
  """
  One retried call, as an explicit state machine:

  ATTEMPTING -> SUCCEEDED
  ATTEMPTING -> BACKOFF -> ATTEMPTING   (retryable error, retries left)
  ATTEMPTING -> EXHAUSTED               (retryable error, no retries left)
  fatal errors leave the machine immediately.
  """

  def __init__(self, policy: RetryPolicy, *, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep, label: str = "") -> None:
    self.policy = policy
    self.state = RetryState.ATTEMPTING
    self.attempts = 0
    self.delays: list[float] = []
    self._sleep = sleep
    self._label = label

  async def run(self, call: Callable[[], Awaitable[T]]) -> T:
    last_error: TransientRemoteError | None = None
    while True:
      if self.state is RetryState.ATTEMPTING:
        self.attempts += 1
        try:
          result = await call()
        except Exception as e:
          if classify_error(e) is RetryDecision.FATAL:
            raise
          last_error = _as_transient(e)
          if self.attempts - 1 >= self.policy.max_retries:
            self.state = RetryState.EXHAUSTED
            logger.error("%s failed after %d attempts: %s", self._label or "request", self.attempts, last_error)
            raise last_error
          self.state = RetryState.BACKOFF
          continue
        self.state = RetryState.SUCCEEDED
        return result

      if self.state is RetryState.BACKOFF:
        delay = self.policy.delay_for(self.attempts - 1)
        self.delays.append(delay)
        logger.warning("%s attempt %d failed: %s. Retrying in %.1fs", self._label or "request", self.attempts, last_error, delay)
        await self._sleep(delay)
        self.state = RetryState.ATTEMPTING


async def retry_with_backoff(
  call: Callable[[], Awaitable[T]],
  policy: RetryPolicy,
  *,
  sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
  label: str = "",
) -> T:
  return await RetryRun(policy, sleep=sleep, label=label).run(call)
