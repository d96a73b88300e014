from __future__ import annotations

import json

import httpx
import pytest

from taskwatch.errors import ConfigurationError, FatalRemoteError, TransientRemoteError
from taskwatch.notifications.service import (
  LocalDeliveryProvider,
  NotificationMessage,
  SlackDeliveryProvider,
  alert_message,
  default_destination,
  provider_for,
)
from taskwatch.schemas import DocumentLink, TaskAlert
from taskwatch.timeutil import CivilCalendar
from conftest import NOW, sydney


def _alert(**kw) -> TaskAlert:
  base = dict(
    id="alert-1",
    taskId="t1",
    taskName="Client Round Table",
    taskUrl="https://agency.monday.com/boards/b1/pulses/t1",
    boardName="Marketing",
    assignee="Ava Lee",
    dueDate=sydney(2026, 10, 20, 9),
    status="Working on it",
    alertType="due_this_week",
    relatedDocuments=[DocumentLink(id=str(i), name=f"doc{i}.pdf", url=f"https://d/{i}", source="monday") for i in range(7)],
    contextualMessage="Round table in 3 days. Time to finalize the agenda and confirm attendees.",
    checklist=["Agenda finalized", "Catering ordered"],
    priority="medium",
    createdAt=NOW,
  )
  base.update(kw)
  return TaskAlert(**base)


def test_alert_message_is_plain_structured_data(calendar: CivilCalendar) -> None:
  msg = alert_message(_alert(), calendar)

  assert msg.title == "Client Round Table"
  assert msg.message.startswith("Round table in 3 days")
  assert msg.fields["Due"] == "Tue 20 Oct 2026"
  assert msg.fields["Checklist"] == "Agenda finalized; Catering ordered"
  assert len(msg.links) == 5
  assert msg.priority == 0
  assert "*" not in msg.as_text()
  assert "doc0.pdf: https://d/0" in msg.as_text()


def test_high_priority_maps_to_level_one() -> None:
  assert alert_message(_alert(priority="high")).priority == 1
  assert alert_message(_alert(priority="low", checklist=[])).fields.get("Checklist") is None


def test_default_destination_prefers_the_assignee() -> None:
  assert default_destination(_alert(assigneeSlackId="U07")) == {"name": "Ava Lee", "channel": "U07"}
  assert default_destination(_alert())["name"] == "default"


@pytest.mark.anyio
async def test_local_provider_records_messages() -> None:
  provider = LocalDeliveryProvider()
  res = await provider.send(destination={"name": "ops"}, msg=NotificationMessage(title="T", message="M", priority=1))
  assert res["status"] == "sent"
  assert provider.sent[0][1].title == "T"
  assert isinstance(provider_for("local"), LocalDeliveryProvider)
  assert isinstance(provider_for("slack"), SlackDeliveryProvider)


def _slack(handler) -> SlackDeliveryProvider:
  return SlackDeliveryProvider("xoxb-test", transport=httpx.MockTransport(handler))


@pytest.mark.anyio
async def test_slack_posts_plain_text() -> None:
  seen: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    return httpx.Response(200, json={"ok": True, "channel": "C1", "ts": "1.2"})

  res = await _slack(handler).send(destination={"channel": "C1"}, msg=NotificationMessage(title="T", message="M"))

  assert res["detail"] == {"channel": "C1", "ts": "1.2"}
  body = json.loads(seen[0].content)
  assert body == {"channel": "C1", "text": "T\nM", "mrkdwn": False}
  assert seen[0].headers["Authorization"] == "Bearer xoxb-test"


@pytest.mark.anyio
async def test_slack_rate_limit_is_transient() -> None:
  provider = _slack(lambda r: httpx.Response(200, json={"ok": False, "error": "ratelimited"}))
  with pytest.raises(TransientRemoteError):
    await provider.send(destination={"channel": "C1"}, msg=NotificationMessage(title="T", message="M"))


@pytest.mark.anyio
async def test_slack_unknown_channel_is_fatal() -> None:
  provider = _slack(lambda r: httpx.Response(200, json={"ok": False, "error": "channel_not_found"}))
  with pytest.raises(FatalRemoteError, match="channel_not_found"):
    await provider.send(destination={"channel": "C404"}, msg=NotificationMessage(title="T", message="M"))


@pytest.mark.anyio
async def test_slack_requires_a_channel() -> None:
  with pytest.raises(ConfigurationError):
    await _slack(lambda r: httpx.Response(200)).send(destination={"channel": ""}, msg=NotificationMessage(title="T", message="M"))
