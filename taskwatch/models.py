from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


class Base(DeclarativeBase):
  pass


class TaskAlertRecord(Base):
  __tablename__ = "task_alerts"

  id: Mapped[str] = mapped_column(String, primary_key=True)
  task_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  task_name: Mapped[str] = mapped_column(Text, nullable=False)
  task_url: Mapped[str | None] = mapped_column(Text, nullable=True)
  board_id: Mapped[str | None] = mapped_column(String, nullable=True)
  board_name: Mapped[str | None] = mapped_column(String, nullable=True)
  workspace_name: Mapped[str | None] = mapped_column(String, nullable=True)
  group_name: Mapped[str | None] = mapped_column(String, nullable=True)
  assignee: Mapped[str | None] = mapped_column(String, nullable=True)
  assignee_slack_id: Mapped[str | None] = mapped_column(String, nullable=True)
  due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
  status: Mapped[str | None] = mapped_column(String, nullable=True)
  status_color: Mapped[str | None] = mapped_column(String, nullable=True)
  alert_type: Mapped[str] = mapped_column(String, nullable=False)
  related_documents: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
  contextual_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  checklist: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
  priority: Mapped[str] = mapped_column(String, nullable=False, default="medium")
  sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


class UserMappingRecord(Base):
  __tablename__ = "user_mappings"

  monday_user_id: Mapped[str] = mapped_column(String, primary_key=True)
  slack_user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  monday_email: Mapped[str | None] = mapped_column(String, nullable=True)
  display_name: Mapped[str | None] = mapped_column(String, nullable=True)
  is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
