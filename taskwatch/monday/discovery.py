from __future__ import annotations

import enum
from collections.abc import Mapping
from typing import Any

from taskwatch.schemas import BoardConfig

DATE_COLUMN_TYPES = frozenset({"date"})
PEOPLE_COLUMN_TYPES = frozenset({"people", "multiple-person"})
DATE_TITLE_HINTS = ("deadline", "due", "date")


class ColumnRole(enum.Enum):
  DATE = "date"
  ASSIGNEE = "assignee"
  NONE = "none"


def column_role(column: Mapping[str, Any]) -> ColumnRole:
  ctype = str(column.get("type") or "").lower()
  if ctype in DATE_COLUMN_TYPES:
    return ColumnRole.DATE
  if ctype in PEOPLE_COLUMN_TYPES:
    return ColumnRole.ASSIGNEE
  return ColumnRole.NONE


def _title_suggests_due(column: Mapping[str, Any]) -> bool:
  title = str(column.get("title") or "").lower()
  return any(h in title for h in DATE_TITLE_HINTS)


def discover_board_config(board: Mapping[str, Any]) -> BoardConfig:
  """
  Pick the due-date and assignee columns of a board from its column list.

  Date column: the first date column whose title mentions deadline/due/date, else the first date
  column. Assignee column: the first people column. Either may be absent.
  """
  columns = [c for c in board.get("columns") or [] if c]
  dates = [c for c in columns if column_role(c) is ColumnRole.DATE]
  people = [c for c in columns if column_role(c) is ColumnRole.ASSIGNEE]

  date_col = next((c for c in dates if _title_suggests_due(c)), dates[0] if dates else None)
  assignee_col = people[0] if people else None

  return BoardConfig(
    id=str(board.get("id")),
    name=str(board.get("name") or ""),
    dateColumnId=str(date_col["id"]) if date_col else None,
    assigneeColumnId=str(assignee_col["id"]) if assignee_col else None,
  )
