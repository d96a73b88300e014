from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import date, datetime, time, timezone
from typing import Any
from urllib.parse import quote

from dateutil import parser as dtparser

from taskwatch.errors import ParseError
from taskwatch.schemas import BoardConfig, ColumnValue, DirectoryUser, Task, TaskAsset, TaskUpdate, WorkspaceConfig
from taskwatch.timeutil import CivilCalendar

logger = logging.getLogger(__name__)

STATUS_COLUMN_TYPES = frozenset({"status", "color"})
FILE_COLUMN_TYPES = frozenset({"file"})


def _load_json(value: Any) -> Any:
  if value is None or isinstance(value, (dict, list)):
    return value
  if isinstance(value, str):
    if not value.strip():
      return None
    try:
      return json.loads(value)
    except ValueError as e:
      raise ParseError(f"Invalid column JSON: {value[:80]!r}") from e
  raise ParseError(f"Unexpected column value type: {type(value).__name__}")


def _safe_json(value: Any) -> Any:
  try:
    return _load_json(value)
  except ParseError:
    return None


def _parse_instant(value: Any) -> datetime | None:
  if not value:
    return None
  try:
    dt = dtparser.isoparse(str(value))
  except (ValueError, OverflowError):
    return None
  return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def parse_date_column(value: Any, calendar: CivilCalendar) -> datetime | None:
  """
  monday date column JSON: {"date": "YYYY-MM-DD", "time": "HH:MM:SS"?}.

  With a time, monday stores the moment in UTC; without one the due date is the civil midnight
  of that date in the organization's zone.
  """
  parsed = _load_json(value)
  if parsed is None:
    return None
  if not isinstance(parsed, dict):
    raise ParseError("Date column value is not an object")
  raw_date = parsed.get("date")
  if not raw_date:
    return None
  try:
    d = date.fromisoformat(str(raw_date))
  except ValueError as e:
    raise ParseError(f"Invalid date: {raw_date!r}") from e

  raw_time = parsed.get("time")
  if not raw_time:
    return calendar.midnight(d)
  try:
    t = time.fromisoformat(str(raw_time))
  except ValueError as e:
    raise ParseError(f"Invalid time: {raw_time!r}") from e
  return datetime.combine(d, t.replace(tzinfo=None), tzinfo=timezone.utc)


def parse_assignee_column(value: Any, users: Mapping[str, DirectoryUser]) -> tuple[str | None, str | None]:
  parsed = _load_json(value)
  if parsed is None:
    return None, None
  if not isinstance(parsed, dict):
    raise ParseError("People column value is not an object")
  people = parsed.get("personsAndTeams") or []
  if not isinstance(people, list):
    raise ParseError("personsAndTeams is not a list")
  if not people:
    return None, None
  first = people[0]
  if not isinstance(first, dict) or first.get("id") in (None, ""):
    raise ParseError("personsAndTeams entry has no id")
  user_id = str(first["id"])
  user = users.get(user_id)
  return user_id, (user.name if user else None)


def parse_status(text: str | None, value: Any) -> tuple[str, str]:
  parsed = _load_json(value)
  if parsed is None:
    return (text or ""), ""
  if not isinstance(parsed, dict):
    raise ParseError("Status column value is not an object")
  label = text or parsed.get("label") or ""
  if isinstance(label, dict):
    label = label.get("text") or ""
  color = parsed.get("color") or ""
  if not color and isinstance(parsed.get("label_style"), dict):
    color = parsed["label_style"].get("color") or ""
  return str(label), str(color)


def _extension_from_name(name: str) -> str:
  if not name or "." not in name:
    return ""
  return name.rsplit(".", 1)[1]


def parse_file_column(value: Any, *, column_id: str = "") -> list[TaskAsset]:
  parsed = _load_json(value)
  if parsed is None:
    return []
  if not isinstance(parsed, dict):
    raise ParseError("File column value is not an object")
  files = parsed.get("files") or []
  if not isinstance(files, list):
    raise ParseError("files is not a list")

  out: list[TaskAsset] = []
  for i, f in enumerate(files):
    if not isinstance(f, dict):
      raise ParseError("File descriptor is not an object")
    asset_id = f.get("assetId")
    name = str(f.get("name") or "Unknown file")
    url = f.get("publicUrl") or f.get("url") or ""
    if not url and asset_id is not None:
      url = f"https://files.monday.com/asset/{asset_id}/{quote(name)}"
    out.append(
      TaskAsset(
        id=str(asset_id if asset_id is not None else f.get("fileId") or f"file-{column_id}-{i}"),
        name=name,
        url=str(url),
        fileExtension=str(f.get("fileExtension") or _extension_from_name(name)),
      )
    )
  return out


def _asset(raw: Mapping[str, Any]) -> TaskAsset:
  name = str(raw.get("name") or "")
  return TaskAsset(
    id=str(raw.get("id") or ""),
    name=name,
    url=str(raw.get("public_url") or raw.get("url") or ""),
    fileExtension=str(raw.get("file_extension") or _extension_from_name(name)).lstrip("."),
  )


def _update(raw: Mapping[str, Any]) -> TaskUpdate:
  return TaskUpdate(
    id=str(raw.get("id") or ""),
    textBody=str(raw.get("text_body") or ""),
    createdAt=_parse_instant(raw.get("created_at")),
    assets=[_asset(a) for a in raw.get("assets") or [] if a],
  )


def task_url(subdomain: str, board_id: str, item_id: str) -> str:
  return f"https://{subdomain}.monday.com/boards/{board_id}/pulses/{item_id}"


def item_to_task(
  item: Mapping[str, Any],
  *,
  board: BoardConfig,
  workspace: WorkspaceConfig,
  users: Mapping[str, DirectoryUser],
  calendar: CivilCalendar,
) -> Task:
  """Build a Task from a raw monday item. A malformed column is logged and treated as absent."""
  item_id = str(item.get("id"))
  column_values: dict[str, ColumnValue] = {}
  due: datetime | None = None
  assignee_id: str | None = None
  assignee_name: str | None = None
  status = ""
  status_color = ""
  file_assets: list[TaskAsset] = []

  for col in item.get("column_values") or []:
    if not col:
      continue
    col_id = str(col.get("id"))
    col_type = str(col.get("type") or "")
    raw_value = col.get("value")
    column_values[col_id] = ColumnValue(
      id=col_id,
      title=str((col.get("column") or {}).get("title") or col_id),
      text=str(col.get("text") or ""),
      value=_safe_json(raw_value),
      type=col_type,
    )
    try:
      if col_id == board.dateColumnId:
        due = parse_date_column(raw_value, calendar)
      if col_id == board.assigneeColumnId:
        assignee_id, assignee_name = parse_assignee_column(raw_value, users)
      if col_type in STATUS_COLUMN_TYPES:
        status, status_color = parse_status(col.get("text"), raw_value)
      if col_type in FILE_COLUMN_TYPES:
        file_assets.extend(parse_file_column(raw_value, column_id=col_id))
    except ParseError as e:
      logger.warning("Ignoring column %s of item %s on board %s: %s", col_id, item_id, board.id, e)

  updates = [_update(u) for u in item.get("updates") or [] if u]
  assets = [_asset(a) for a in item.get("assets") or [] if a]
  assets.extend(file_assets)
  for u in updates:
    assets.extend(u.assets)

  return Task(
    id=item_id,
    name=str(item.get("name") or ""),
    boardId=board.id,
    boardName=board.name,
    workspaceId=workspace.id,
    workspaceName=workspace.name,
    groupName=str((item.get("group") or {}).get("title") or ""),
    dueDate=due,
    assigneeId=assignee_id,
    assigneeName=assignee_name,
    status=status,
    statusColor=status_color,
    url=task_url(workspace.subdomain, board.id, item_id),
    createdAt=_parse_instant(item.get("created_at")),
    updatedAt=_parse_instant(item.get("updated_at")),
    assets=assets,
    columnValues=column_values,
    updates=updates,
  )


def task_to_record(task: Task) -> dict[str, Any]:
  return task.model_dump(mode="json")


def task_from_record(record: Mapping[str, Any]) -> Task:
  return Task.model_validate(record)
