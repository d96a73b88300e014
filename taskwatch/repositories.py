from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskwatch.errors import ConfigurationError
from taskwatch.models import TaskAlertRecord, UserMappingRecord, utcnow
from taskwatch.schemas import DocumentLink, TaskAlert

logger = logging.getLogger(__name__)


class AlertRepository(Protocol):
  async def insert_alerts(self, alerts: Sequence[TaskAlert]) -> int: ...

  async def alerts_due_between(self, start: datetime, end: datetime) -> list[TaskAlert]: ...

  async def alerts_created_between(self, start: datetime, end: datetime) -> list[TaskAlert]: ...

  async def pending(self) -> list[TaskAlert]: ...

  async def mark_sent(self, alert_id: str, *, at: datetime | None = None) -> None: ...

  async def mark_many_sent(self, alert_ids: Sequence[str], *, at: datetime | None = None) -> None: ...

  async def delete_created_before(self, before: datetime) -> int: ...


class UserMappingRepository(Protocol):
  async def slack_id_for(self, monday_user_id: str) -> str | None: ...

  async def monday_id_for(self, slack_user_id: str) -> str | None: ...


def alert_values(alert: TaskAlert) -> dict[str, Any]:
  return {
    "id": alert.id,
    "task_id": alert.taskId,
    "task_name": alert.taskName,
    "task_url": alert.taskUrl,
    "board_id": alert.boardId,
    "board_name": alert.boardName,
    "workspace_name": alert.workspaceName,
    "group_name": alert.groupName,
    "assignee": alert.assignee,
    "assignee_slack_id": alert.assigneeSlackId,
    "due_date": alert.dueDate,
    "status": alert.status,
    "status_color": alert.statusColor,
    "alert_type": alert.alertType,
    "related_documents": [d.model_dump(mode="json") for d in alert.relatedDocuments],
    "contextual_message": alert.contextualMessage,
    "checklist": list(alert.checklist),
    "priority": alert.priority,
    "sent_at": alert.sentAt,
    "created_at": alert.createdAt,
  }


def alert_from_record(r: TaskAlertRecord) -> TaskAlert:
  return TaskAlert(
    id=r.id,
    taskId=r.task_id,
    taskName=r.task_name,
    taskUrl=r.task_url,
    boardId=r.board_id,
    boardName=r.board_name,
    workspaceName=r.workspace_name,
    groupName=r.group_name,
    assignee=r.assignee,
    assigneeSlackId=r.assignee_slack_id,
    dueDate=r.due_date,
    status=r.status,
    statusColor=r.status_color,
    alertType=r.alert_type,  # type: ignore[arg-type]
    relatedDocuments=[DocumentLink.model_validate(d) for d in r.related_documents or []],
    contextualMessage=r.contextual_message,
    checklist=list(r.checklist or []),
    priority=r.priority,  # type: ignore[arg-type]
    sentAt=r.sent_at,
    createdAt=r.created_at,
  )


def _insert_ignoring_conflicts(db: AsyncSession, rows: list[dict[str, Any]]):
  dialect = db.get_bind().dialect.name
  if dialect == "postgresql":
    return postgresql.insert(TaskAlertRecord).values(rows).on_conflict_do_nothing(index_elements=["id"])
  if dialect == "sqlite":
    return sqlite.insert(TaskAlertRecord).values(rows).on_conflict_do_nothing(index_elements=["id"])
  raise ConfigurationError(f"Unsupported database dialect: {dialect}")


class SqlAlertRepository:
  def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
    self._sessions = sessions

  async def insert_alerts(self, alerts: Sequence[TaskAlert]) -> int:
    """Insert new alerts; rows whose id already exists are left untouched."""
    if not alerts:
      return 0
    async with self._sessions() as db:
      res = await db.execute(_insert_ignoring_conflicts(db, [alert_values(a) for a in alerts]))
      await db.commit()
    inserted = res.rowcount if res.rowcount is not None and res.rowcount >= 0 else len(alerts)
    logger.info("Persisted %d of %d alert(s)", inserted, len(alerts))
    return inserted

  async def _select(self, *where: Any) -> list[TaskAlert]:
    async with self._sessions() as db:
      res = await db.execute(select(TaskAlertRecord).where(*where).order_by(TaskAlertRecord.due_date.asc()))
      return [alert_from_record(r) for r in res.scalars().all()]

  async def alerts_due_between(self, start: datetime, end: datetime) -> list[TaskAlert]:
    return await self._select(TaskAlertRecord.due_date >= start, TaskAlertRecord.due_date <= end)

  async def alerts_created_between(self, start: datetime, end: datetime) -> list[TaskAlert]:
    return await self._select(TaskAlertRecord.created_at >= start, TaskAlertRecord.created_at <= end)

  async def pending(self) -> list[TaskAlert]:
    return await self._select(TaskAlertRecord.sent_at.is_(None))

  async def mark_sent(self, alert_id: str, *, at: datetime | None = None) -> None:
    await self.mark_many_sent([alert_id], at=at)

  async def mark_many_sent(self, alert_ids: Sequence[str], *, at: datetime | None = None) -> None:
    if not alert_ids:
      return
    async with self._sessions() as db:
      await db.execute(
        update(TaskAlertRecord).where(TaskAlertRecord.id.in_(list(alert_ids))).values(sent_at=at or utcnow())
      )
      await db.commit()

  async def delete_created_before(self, before: datetime) -> int:
    async with self._sessions() as db:
      res = await db.execute(delete(TaskAlertRecord).where(TaskAlertRecord.created_at <= before))
      await db.commit()
    return int(res.rowcount or 0)


class SqlUserMappingRepository:
  def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
    self._sessions = sessions

  async def slack_id_for(self, monday_user_id: str) -> str | None:
    async with self._sessions() as db:
      res = await db.execute(
        select(UserMappingRecord.slack_user_id).where(
          UserMappingRecord.monday_user_id == str(monday_user_id), UserMappingRecord.is_active.is_(True)
        )
      )
      return res.scalar_one_or_none()

  async def monday_id_for(self, slack_user_id: str) -> str | None:
    async with self._sessions() as db:
      res = await db.execute(
        select(UserMappingRecord.monday_user_id)
        .where(UserMappingRecord.slack_user_id == slack_user_id, UserMappingRecord.is_active.is_(True))
        .limit(1)
      )
      return res.scalar_one_or_none()
