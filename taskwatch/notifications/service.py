from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from taskwatch.config import settings
from taskwatch.errors import ConfigurationError, FatalRemoteError, TransientRemoteError
from taskwatch.monday.retry import is_retryable_status, is_transient_message
from taskwatch.schemas import TaskAlert
from taskwatch.timeutil import CivilCalendar

logger = logging.getLogger(__name__)

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"

_PRIORITY_LEVEL = {"high": 1, "medium": 0, "low": -1}


@dataclass(frozen=True)
class NotificationMessage:
  title: str
  message: str
  fields: dict[str, str] = field(default_factory=dict)
  links: list[dict[str, str]] = field(default_factory=list)
  priority: int = 0

  def as_text(self) -> str:
    lines = [self.title, self.message]
    lines.extend(f"{k}: {v}" for k, v in self.fields.items() if v)
    lines.extend(f"{link['name']}: {link['url']}" for link in self.links if link.get("url"))
    return "\n".join(x for x in lines if x)


class DeliveryProvider(Protocol):
  async def send(self, *, destination: dict[str, Any], msg: NotificationMessage) -> dict[str, Any]: ...


class LocalDeliveryProvider:
  """Records messages instead of sending them."""

  def __init__(self) -> None:
    self.sent: list[tuple[dict[str, Any], NotificationMessage]] = []

  async def send(self, *, destination: dict[str, Any], msg: NotificationMessage) -> dict[str, Any]:
    self.sent.append((destination, msg))
    return {
      "provider": "local",
      "status": "sent",
      "detail": {"title": msg.title, "message": msg.message, "priority": msg.priority, "destination": destination.get("name")},
    }


class SlackDeliveryProvider:
  def __init__(self, token: str | None = None, *, transport: httpx.AsyncBaseTransport | None = None, timeout: float = 15) -> None:
    self.token = (token or "").strip()
    self._transport = transport
    self._timeout = timeout

  async def send(self, *, destination: dict[str, Any], msg: NotificationMessage) -> dict[str, Any]:
    cfg = destination.get("config") or {}
    token = str(cfg.get("botToken") or self.token).strip()
    channel = str(destination.get("channel") or cfg.get("channel") or "").strip()
    if not token or not channel:
      raise ConfigurationError("Slack destination missing botToken/channel")

    payload = {"channel": channel, "text": msg.as_text(), "mrkdwn": False}
    try:
      async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
        r = await client.post(SLACK_POST_MESSAGE_URL, json=payload, headers={"Authorization": f"Bearer {token}"})
    except httpx.HTTPError as e:
      raise TransientRemoteError(f"Slack request failed: {e}") from e
    if r.status_code >= 400:
      err = TransientRemoteError if is_retryable_status(r.status_code) else FatalRemoteError
      raise err(f"Slack returned HTTP {r.status_code}", status_code=r.status_code)
    data = r.json()
    if not data.get("ok"):
      error = str(data.get("error") or "unknown_error")
      err = TransientRemoteError if is_transient_message(error.replace("_", " ")) else FatalRemoteError
      raise err(f"Slack rejected message: {error}", status_code=r.status_code, details=data)
    return {"provider": "slack", "status": "sent", "detail": {"channel": data.get("channel"), "ts": data.get("ts")}}


def provider_for(provider: str) -> DeliveryProvider:
  if provider == "slack":
    return SlackDeliveryProvider(settings.slack_bot_token)
  return LocalDeliveryProvider()


def default_destination(alert: TaskAlert | None = None) -> dict[str, Any]:
  """Direct message to the mapped assignee when known, else the default channel."""
  if alert is not None and alert.assigneeSlackId:
    return {"name": alert.assignee or alert.assigneeSlackId, "channel": alert.assigneeSlackId}
  return {"name": "default", "channel": settings.slack_default_channel or ""}


def alert_message(alert: TaskAlert, calendar: CivilCalendar | None = None) -> NotificationMessage:
  """Plain structured data; rendering belongs to the delivery side."""
  fields = {
    "Due": calendar.format_date_only(alert.dueDate) if calendar else alert.dueDate.date().isoformat(),
    "Assignee": alert.assignee or "",
    "Board": alert.boardName or "",
    "Status": alert.status or "",
    "Task link": alert.taskUrl or "",
  }
  if alert.checklist:
    fields["Checklist"] = "; ".join(alert.checklist)
  return NotificationMessage(
    title=alert.taskName,
    message=alert.contextualMessage or "",
    fields=fields,
    links=[{"name": d.name, "url": d.url} for d in alert.relatedDocuments[:5]],
    priority=_PRIORITY_LEVEL.get(alert.priority, 0),
  )
