from __future__ import annotations

import json
import sys
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

from taskwatch.errors import FatalRemoteError, TransientRemoteError
from taskwatch.schemas import BoardConfig, FetchReport, Task, TaskAlert, TaskAsset, WorkspaceConfig
from taskwatch.search import RankedItem, document_for_task, search
from taskwatch.timeutil import CivilCalendar

TZ = "Australia/Sydney"
# Saturday 17 Oct 2026, 10:00 in Sydney (AEDT, UTC+11).
NOW = datetime(2026, 10, 16, 23, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def calendar() -> CivilCalendar:
  return CivilCalendar(TZ, clock=lambda: NOW)


def sydney(y: int, m: int, d: int, hh: int = 0, mm: int = 0) -> datetime:
  """A Sydney wall-clock time in October 2026 (UTC+11) as a UTC instant."""
  return datetime(y, m, d, hh, mm, tzinfo=timezone.utc) - timedelta(hours=11)


def make_task(
  name: str,
  due: datetime | None,
  *,
  id: str | None = None,
  assignee_id: str | None = None,
  assignee_name: str | None = None,
  assets: Sequence[TaskAsset] = (),
  board_id: str = "b1",
) -> Task:
  tid = id or name.lower().replace(" ", "-")
  return Task(
    id=tid,
    name=name,
    boardId=board_id,
    boardName="Marketing",
    workspaceId="default",
    workspaceName="Agency",
    groupName="This week",
    dueDate=due,
    assigneeId=assignee_id,
    assigneeName=assignee_name,
    status="Working on it",
    statusColor="#fdab3d",
    url=f"https://agency.monday.com/boards/{board_id}/pulses/{tid}",
    assets=list(assets),
  )


def make_item(
  item_id: str,
  name: str,
  *,
  date: str | None = None,
  time: str | None = None,
  date_column: str = "date4",
  person_id: int | None = None,
  status: str | None = None,
  files: list[dict[str, Any]] | None = None,
  assets: list[dict[str, Any]] | None = None,
  updates: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
  """A raw monday.com item as returned by items_page."""
  cols: list[dict[str, Any]] = []
  if date is not None:
    value = {"date": date}
    if time:
      value["time"] = time
    cols.append({"id": date_column, "text": date, "value": json.dumps(value), "type": "date", "column": {"id": date_column, "title": "Due date"}})
  if person_id is not None:
    cols.append(
      {
        "id": "person",
        "text": "",
        "value": json.dumps({"personsAndTeams": [{"id": person_id, "kind": "person"}]}),
        "type": "people",
        "column": {"id": "person", "title": "Owner"},
      }
    )
  if status is not None:
    cols.append(
      {
        "id": "status",
        "text": status,
        "value": json.dumps({"index": 0, "label": status, "color": "#00c875"}),
        "type": "status",
        "column": {"id": "status", "title": "Status"},
      }
    )
  if files is not None:
    cols.append({"id": "files", "text": "", "value": json.dumps({"files": files}), "type": "file", "column": {"id": "files", "title": "Files"}})
  item: dict[str, Any] = {
    "id": item_id,
    "name": name,
    "state": "active",
    "created_at": "2026-10-01T00:00:00Z",
    "updated_at": "2026-10-10T05:30:00Z",
    "group": {"id": "topics", "title": "This week"},
    "column_values": cols,
    "assets": assets or [],
  }
  if updates is not None:
    item["updates"] = updates
  return item


def board_with_columns(board_id: str, name: str, columns: list[tuple[str, str, str]]) -> dict[str, Any]:
  return {"id": board_id, "name": name, "columns": [{"id": cid, "title": title, "type": ctype} for cid, title, ctype in columns]}


def workspace(id: str = "default", *, boards: list[BoardConfig] | None = None, token: str = "tkn") -> WorkspaceConfig:
  return WorkspaceConfig(id=id, name=f"Workspace {id}", apiToken=token, subdomain="agency", boards=boards or [])


def _stored_date(item: dict[str, Any], column_id: str) -> str | None:
  """The raw `date` monday compares a `between` filter against (UTC date for timed values)."""
  for cv in item.get("column_values") or []:
    if cv.get("id") == column_id and cv.get("value"):
      return json.loads(cv["value"]).get("date")
  return None


class FakeMondayClient:
  """Same surface as MondayClient, backed by dicts."""

  def __init__(
    self,
    items: dict[str, list[dict[str, Any]]] | None = None,
    *,
    boards: list[dict[str, Any]] | None = None,
    users: list[dict[str, Any]] | None = None,
    workspaces: list[dict[str, Any]] | None = None,
    failing_filter: set[str] | None = None,
    failing_boards: set[str] | None = None,
  ) -> None:
    self.items = items or {}
    self.boards = boards or []
    self.users = users or [{"id": 7, "name": "Ava Lee", "email": "ava@example.com"}]
    self.workspaces = workspaces or [{"id": 100, "name": "Main", "kind": "open"}]
    self.failing_filter = failing_filter or set()
    self.failing_boards = failing_boards or set()
    self.calls: list[tuple[str, str]] = []
    self.bounds: list[tuple[str, str]] = []

  async def get_users(self) -> list[dict[str, Any]]:
    return list(self.users)

  async def get_workspaces(self) -> list[dict[str, Any]]:
    return list(self.workspaces)

  async def get_boards_in_workspace(self, workspace_id: str) -> list[dict[str, Any]]:
    return [{"id": b["id"], "name": b["name"]} for b in self.boards]

  async def get_boards_with_columns(self, board_ids: list[str]) -> list[dict[str, Any]]:
    return [b for b in self.boards if str(b["id"]) in board_ids]

  def _check(self, board_id: str) -> None:
    if board_id in self.failing_boards:
      raise TransientRemoteError(f"board {board_id} unavailable", status_code=503)

  async def get_items_in_date_range(self, board_id: str, date_column_id: str, start: str, end: str) -> list[dict[str, Any]]:
    self.calls.append(("filtered", board_id))
    self._check(board_id)
    if board_id in self.failing_filter:
      raise FatalRemoteError("Column not supported in query_params", status_code=200)
    self.bounds.append((start, end))
    return [i for i in self.items.get(board_id, []) if start <= (_stored_date(i, date_column_id) or "") <= end]

  async def get_all_items_from_board(self, board_id: str) -> list[dict[str, Any]]:
    self.calls.append(("all", board_id))
    self._check(board_id)
    return list(self.items.get(board_id, []))

  async def get_all_items_with_updates(self, board_id: str) -> list[dict[str, Any]]:
    self.calls.append(("updates", board_id))
    self._check(board_id)
    return list(self.items.get(board_id, []))


class MemoryAlertRepository:
  def __init__(self) -> None:
    self.rows: dict[str, TaskAlert] = {}

  async def insert_alerts(self, alerts: Sequence[TaskAlert]) -> int:
    n = 0
    for a in alerts:
      if a.id not in self.rows:
        self.rows[a.id] = a.model_copy(deep=True)
        n += 1
    return n

  async def alerts_due_between(self, start: datetime, end: datetime) -> list[TaskAlert]:
    return [a for a in self.rows.values() if start <= a.dueDate <= end]

  async def alerts_created_between(self, start: datetime, end: datetime) -> list[TaskAlert]:
    return [a for a in self.rows.values() if start <= a.createdAt <= end]

  async def pending(self) -> list[TaskAlert]:
    return [a for a in self.rows.values() if a.sentAt is None]

  async def mark_sent(self, alert_id: str, *, at: datetime | None = None) -> None:
    await self.mark_many_sent([alert_id], at=at)

  async def mark_many_sent(self, alert_ids: Sequence[str], *, at: datetime | None = None) -> None:
    for i in alert_ids:
      if i in self.rows:
        self.rows[i].sentAt = at or NOW

  async def delete_created_before(self, before: datetime) -> int:
    old = [i for i, a in self.rows.items() if a.createdAt <= before]
    for i in old:
      del self.rows[i]
    return len(old)


class MemoryUserMappings:
  def __init__(self, mapping: dict[str, str] | None = None) -> None:
    self.mapping = mapping or {}

  async def slack_id_for(self, monday_user_id: str) -> str | None:
    return self.mapping.get(monday_user_id)

  async def monday_id_for(self, slack_user_id: str) -> str | None:
    return next((m for m, s in self.mapping.items() if s == slack_user_id), None)


class StubManager:
  """Stands in for WorkspaceManager: serves a fixed task list, filtered by due range."""

  def __init__(self, calendar: CivilCalendar, tasks: list[Task], *, failed: list[str] | None = None) -> None:
    self.calendar = calendar
    self.tasks = tasks
    self.failed = failed or []
    self.ranges: list[tuple[datetime, datetime]] = []

  async def fetch_tasks_due_in_range(self, start: datetime, end: datetime) -> FetchReport:
    self.ranges.append((start, end))
    hits = [t for t in self.tasks if t.dueDate is not None and start <= t.dueDate <= end]
    return FetchReport(tasks=hits, sourcesAttempted=2, failedSources=list(self.failed))

  async def search_tasks(self, query: str, *, min_score: int = 4) -> list[RankedItem[Task]]:
    return search(query, (document_for_task(t) for t in self.tasks), min_score=min_score)
