from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import Any, Literal

from taskwatch.alerts.documents import DocumentCorrelator
from taskwatch.alerts.generator import AlertGenerator
from taskwatch.config import settings
from taskwatch.monday.workspace import WorkspaceManager
from taskwatch.notifications.service import DeliveryProvider, alert_message, default_destination
from taskwatch.repositories import AlertRepository, UserMappingRepository
from taskwatch.schemas import AlertBatchOut, AlertType, DeliveryReportOut, FetchReport, Task, TaskAlert
from taskwatch.search import RankedItem
from taskwatch.timeutil import ONE_MS

logger = logging.getLogger(__name__)

OnDemandKind = Literal["today", "week", "overdue", "upcoming"]


def new_alert_id() -> str:
  return f"alert-{uuid.uuid4()}"


class TaskMonitor:
  """Ties task retrieval, alert generation, persistence and delivery together."""

  def __init__(
    self,
    manager: WorkspaceManager,
    alerts: AlertRepository,
    mappings: UserMappingRepository,
    *,
    generator: AlertGenerator | None = None,
    correlator: DocumentCorrelator | None = None,
    id_factory: Callable[[], str] = new_alert_id,
  ) -> None:
    self.manager = manager
    self.calendar = manager.calendar
    self.alerts = alerts
    self.mappings = mappings
    self.generator = generator or AlertGenerator(self.calendar)
    self.correlator = correlator or DocumentCorrelator()
    self._new_id = id_factory

  async def _already_alerted_today(self, now: datetime) -> set[str]:
    start, end = self.calendar.today_range(now)
    due_today = await self.alerts.alerts_due_between(start, end)
    created_today = await self.alerts.alerts_created_between(start, end)
    return {a.taskId for a in [*due_today, *created_today]}

  async def _slack_id(self, task: Task) -> str | None:
    if not task.assigneeId:
      return None
    return await self.mappings.slack_id_for(task.assigneeId)

  async def build_alert(self, task: Task, alert_type: AlertType, now: datetime) -> TaskAlert:
    if task.dueDate is None:
      raise ValueError(f"Task {task.id} has no due date to alert on")
    effective = self.generator.classify(task, alert_type, now)
    return TaskAlert(
      id=self._new_id(),
      taskId=task.id,
      taskName=task.name,
      taskUrl=task.url,
      boardId=task.boardId,
      boardName=task.boardName,
      workspaceName=task.workspaceName,
      groupName=task.groupName or None,
      assignee=task.assigneeName,
      assigneeSlackId=await self._slack_id(task),
      dueDate=task.dueDate,
      status=task.status or None,
      statusColor=task.statusColor or None,
      alertType=effective,
      relatedDocuments=await self.correlator.related_documents(task),
      contextualMessage=self.generator.contextual_message(task, effective, now),
      checklist=self.generator.checklist(task),
      priority=self.generator.priority(task, effective, now),
      sentAt=None,
      createdAt=now,
    )

  async def generate_alerts(
    self, tasks: Sequence[Task], alert_type: AlertType, *, persist: bool = True, now: datetime | None = None
  ) -> list[TaskAlert]:
    now = now or self.calendar.now()
    skip = await self._already_alerted_today(now) if persist else set()

    alerts: list[TaskAlert] = []
    for task in tasks:
      if task.dueDate is None:
        continue
      if task.id in skip:
        logger.info("Skipping task %s, already alerted today", task.id)
        continue
      skip.add(task.id)
      alerts.append(await self.build_alert(task, alert_type, now))

    if persist and alerts:
      await self.alerts.insert_alerts(alerts)
    return alerts

  def _lookback_range(self, now: datetime, days: int) -> tuple[datetime, datetime]:
    today = self.calendar.local_date(now)
    start = self.calendar.midnight(today - timedelta(days=days))
    return start, self.calendar.midnight(today) - ONE_MS

  async def _overdue_tasks(self, now: datetime, days: int) -> FetchReport:
    start, end = self._lookback_range(now, days)
    report = await self.manager.fetch_tasks_due_in_range(start, end)
    overdue = [t for t in report.tasks if t.dueDate is not None and self.calendar.is_overdue(t.dueDate, now)]
    return report.model_copy(update={"tasks": overdue})

  async def process_daily(self, now: datetime | None = None) -> AlertBatchOut:
    now = now or self.calendar.now()
    start, end = self.calendar.today_range(now)
    today = await self.manager.fetch_tasks_due_in_range(start, end)
    overdue = await self._overdue_tasks(now, settings.overdue_lookback_days)
    logger.info("Daily run: %d due today, %d overdue", len(today.tasks), len(overdue.tasks))

    alerts = await self.generate_alerts(today.tasks, "due_today", now=now)
    alerts += await self.generate_alerts(overdue.tasks, "overdue", now=now)
    failed = [*today.failedSources, *overdue.failedSources]
    return AlertBatchOut(alerts=alerts, total=len(alerts), failedSources=sorted(set(failed)))

  async def process_weekly(self, now: datetime | None = None) -> AlertBatchOut:
    now = now or self.calendar.now()
    start, end = self.calendar.week_range(now)
    report = await self.manager.fetch_tasks_due_in_range(start, end)
    logger.info("Weekly run: %d due this week", len(report.tasks))
    alerts = await self.generate_alerts(report.tasks, "due_this_week", now=now)
    return AlertBatchOut(alerts=alerts, total=len(alerts), failedSources=report.failedSources)

  async def tasks_on_demand(
    self, kind: OnDemandKind, slack_user_id: str | None = None, *, now: datetime | None = None
  ) -> AlertBatchOut:
    """Ad-hoc view; the alerts are never persisted."""
    now = now or self.calendar.now()
    alert_type: AlertType
    if kind == "today":
      report = await self.manager.fetch_tasks_due_in_range(*self.calendar.today_range(now))
      alert_type = "due_today"
    elif kind == "week":
      report = await self.manager.fetch_tasks_due_in_range(*self.calendar.week_range(now))
      alert_type = "due_this_week"
    elif kind == "overdue":
      report = await self._overdue_tasks(now, settings.on_demand_overdue_lookback_days)
      alert_type = "overdue"
    elif kind == "upcoming":
      start = self.calendar.end_of_day(now) + ONE_MS
      end = self.calendar.midnight(self.calendar.local_date(now) + timedelta(days=settings.upcoming_days + 1)) - ONE_MS
      report = await self.manager.fetch_tasks_due_in_range(start, end)
      alert_type = "upcoming_event"
    else:
      raise ValueError(f"Unknown task range: {kind}")

    tasks = report.tasks
    if slack_user_id:
      monday_id = await self.mappings.monday_id_for(slack_user_id)
      if monday_id is None:
        logger.warning("No monday user mapped to Slack user %s; returning no tasks", slack_user_id)
        tasks = []
      else:
        tasks = [t for t in tasks if t.assigneeId == monday_id]

    alerts = await self.generate_alerts(tasks, alert_type, persist=False, now=now)
    return AlertBatchOut(alerts=alerts, total=len(alerts), failedSources=report.failedSources)

  async def pending_alerts(self) -> list[TaskAlert]:
    return await self.alerts.pending()

  async def mark_sent(self, alert_id: str) -> None:
    await self.alerts.mark_sent(alert_id)
    logger.info("Marked alert %s as sent", alert_id)

  async def mark_many_sent(self, alert_ids: Sequence[str]) -> None:
    await self.alerts.mark_many_sent(alert_ids)
    logger.info("Marked %d alert(s) as sent", len(alert_ids))

  async def deliver_pending(self, provider: DeliveryProvider, destination: dict[str, Any] | None = None) -> DeliveryReportOut:
    """Hand each unsent alert to `provider`; only successful deliveries get `sentAt`."""
    report = DeliveryReportOut()
    for alert in await self.pending_alerts():
      try:
        await provider.send(destination=destination or default_destination(alert), msg=alert_message(alert, self.calendar))
      except Exception as e:
        logger.error("Delivering alert %s for task %s failed: %s", alert.id, alert.taskId, e)
        report.failed[alert.id] = str(e)
        continue
      report.delivered.append(alert.id)
    if report.delivered:
      await self.mark_many_sent(report.delivered)
    return report

  async def purge_alerts_older_than(self, days: int | None = None, *, now: datetime | None = None) -> int:
    now = now or self.calendar.now()
    keep_days = settings.alert_retention_days if days is None else days
    removed = await self.alerts.delete_created_before(now - timedelta(days=keep_days))
    logger.info("Removed %d alert(s) older than %d day(s)", removed, keep_days)
    return removed

  async def search(self, query: str, *, min_score: int | None = None) -> list[RankedItem[Task]]:
    return await self.manager.search_tasks(query, min_score=settings.min_relevance_score if min_score is None else min_score)
