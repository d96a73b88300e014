from __future__ import annotations

from typing import Any


class TaskwatchError(RuntimeError):
  pass


class RemoteError(TaskwatchError):
  def __init__(self, message: str, *, status_code: int | None = None, details: dict[str, Any] | None = None) -> None:
    super().__init__(message)
    self.message = message
    self.status_code = status_code
    self.details = details or {}


class TransientRemoteError(RemoteError):
  """Timeouts, connection resets, rate limits, 408/429/5xx. Safe to retry."""


class FatalRemoteError(RemoteError):
  """Auth failures, malformed queries, any other 4xx. Never retried."""


class ParseError(TaskwatchError):
  pass


class ConfigurationError(TaskwatchError):
  pass


class NotInitializedError(TaskwatchError):
  pass
