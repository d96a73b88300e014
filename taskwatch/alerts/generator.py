from __future__ import annotations

import logging
from datetime import datetime

from taskwatch.alerts.templates import TEMPLATES, ReminderTemplate, match_checklist, match_template
from taskwatch.schemas import AlertPriority, AlertType, Task
from taskwatch.timeutil import CivilCalendar

logger = logging.getLogger(__name__)


class AlertGenerator:
  """Classification, priority and reminder text for a single task. Pure; never suspends."""

  def __init__(self, calendar: CivilCalendar, templates: tuple[ReminderTemplate, ...] = TEMPLATES) -> None:
    self.calendar = calendar
    self.templates = templates

  def classify(self, task: Task, requested: AlertType, now: datetime | None = None) -> AlertType:
    if task.dueDate is not None and self.calendar.is_overdue(task.dueDate, now):
      return "overdue"
    return requested

  def priority(self, task: Task, alert_type: AlertType, now: datetime | None = None) -> AlertPriority:
    if task.dueDate is None:
      return "low"
    if alert_type == "overdue" or self.calendar.is_overdue(task.dueDate, now):
      return "high"
    days = self.calendar.days_until(task.dueDate, now)
    if alert_type == "due_today" or days <= 1:
      return "high"
    if days <= 3:
      return "medium"
    return "low"

  def _overdue_message(self, task: Task, days_overdue: int) -> str:
    due = self.calendar.format_date_short(task.dueDate) if task.dueDate else "unknown"
    if days_overdue == 0:
      return f'OVERDUE: "{task.name}" was due today.'
    if days_overdue == 1:
      return f'OVERDUE by 1 day: "{task.name}" was due {due}. Please address urgently.'
    if days_overdue <= 3:
      return f'OVERDUE by {days_overdue} days: "{task.name}" was due {due}. Needs immediate attention.'
    if days_overdue <= 7:
      return f'OVERDUE by {days_overdue} days: "{task.name}" was due {due}. Please update the status or complete it.'
    return f'OVERDUE by {days_overdue} days: "{task.name}" was due {due}. Consider if this task is still relevant.'

  def _default_message(self, task: Task, alert_type: AlertType, days: int) -> str:
    due = self.calendar.format_date_short(task.dueDate) if task.dueDate else ""
    if alert_type == "due_today" or days == 0:
      return f'Due today: "{task.name}"'
    if days == 1:
      return f'Due tomorrow: "{task.name}"'
    if days <= 3:
      return f'Due in {days} days ({due}): "{task.name}"'
    if days <= 7:
      return f'Due this week ({due}): "{task.name}"'
    return f'Upcoming ({due}): "{task.name}"'

  def contextual_message(self, task: Task, alert_type: AlertType, now: datetime | None = None) -> str | None:
    if task.dueDate is None:
      return None
    days = self.calendar.days_until(task.dueDate, now)
    if alert_type == "overdue" or self.calendar.is_overdue(task.dueDate, now):
      return self._overdue_message(task, abs(min(days, 0)))

    template = match_template(task.name, self.templates)
    if template is not None:
      message = template.message_for(days)
      if message is not None:
        logger.debug("Template %s matched %r at %d day(s) out", template.name, task.name, days)
        return message
    return self._default_message(task, alert_type, days)

  def checklist(self, task: Task) -> list[str]:
    return match_checklist(task.name, self.templates)
