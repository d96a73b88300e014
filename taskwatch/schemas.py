from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

AlertType = Literal["due_today", "due_this_week", "overdue", "upcoming_event"]
AlertPriority = Literal["high", "medium", "low"]
DocumentSource = Literal["monday", "sharepoint"]


def _as_utc(value: object) -> object:
  if isinstance(value, datetime):
    if value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
  return value


class BoardConfig(BaseModel):
  model_config = ConfigDict(frozen=True)

  id: str
  name: str = ""
  dateColumnId: str | None = None
  assigneeColumnId: str | None = None

  @field_validator("id", mode="before")
  @classmethod
  def _id_as_str(cls, v: object) -> object:
    return str(v) if isinstance(v, int) else v


class WorkspaceConfig(BaseModel):
  model_config = ConfigDict(frozen=True)

  id: str
  name: str
  apiToken: str = Field(default="", repr=False)
  subdomain: str = ""
  boards: list[BoardConfig] = Field(default_factory=list)
  remoteWorkspaceIds: list[str] = Field(default_factory=list)


class DirectoryUser(BaseModel):
  model_config = ConfigDict(frozen=True)

  id: str
  name: str = ""
  email: str | None = None


class TaskAsset(BaseModel):
  model_config = ConfigDict(frozen=True)

  id: str
  name: str
  url: str
  fileExtension: str = ""


class ColumnValue(BaseModel):
  model_config = ConfigDict(frozen=True)

  id: str
  title: str
  text: str = ""
  value: Any = None
  type: str = ""


class TaskUpdate(BaseModel):
  model_config = ConfigDict(frozen=True)

  id: str
  textBody: str = ""
  createdAt: datetime | None = None
  assets: list[TaskAsset] = Field(default_factory=list)

  @field_validator("createdAt")
  @classmethod
  def _utc(cls, v: datetime | None) -> datetime | None:
    return _as_utc(v)  # type: ignore[return-value]


class Task(BaseModel):
  model_config = ConfigDict(frozen=True)

  id: str
  name: str
  boardId: str
  boardName: str
  workspaceId: str
  workspaceName: str
  groupName: str = ""
  dueDate: datetime | None = None
  assigneeId: str | None = None
  assigneeName: str | None = None
  status: str = ""
  statusColor: str = ""
  url: str
  createdAt: datetime | None = None
  updatedAt: datetime | None = None
  assets: list[TaskAsset] = Field(default_factory=list)
  columnValues: dict[str, ColumnValue] = Field(default_factory=dict)
  updates: list[TaskUpdate] = Field(default_factory=list)

  @field_validator("dueDate", "createdAt", "updatedAt")
  @classmethod
  def _utc(cls, v: datetime | None) -> datetime | None:
    return _as_utc(v)  # type: ignore[return-value]


class DocumentLink(BaseModel):
  model_config = ConfigDict(frozen=True)

  id: str
  name: str
  url: str
  source: DocumentSource
  fileType: str = "unknown"

  def dedupe_key(self) -> str:
    url = (self.url or "").strip().lower()
    if url:
      return url
    return f"{self.source}-{self.name}".lower()


class TaskAlert(BaseModel):
  id: str
  taskId: str
  taskName: str
  taskUrl: str | None = None
  boardId: str | None = None
  boardName: str | None = None
  workspaceName: str | None = None
  groupName: str | None = None
  assignee: str | None = None
  assigneeSlackId: str | None = None
  dueDate: datetime
  status: str | None = None
  statusColor: str | None = None
  alertType: AlertType
  relatedDocuments: list[DocumentLink] = Field(default_factory=list)
  contextualMessage: str | None = None
  checklist: list[str] = Field(default_factory=list)
  priority: AlertPriority = "medium"
  sentAt: datetime | None = None
  createdAt: datetime

  @field_validator("dueDate", "sentAt", "createdAt")
  @classmethod
  def _utc(cls, v: datetime | None) -> datetime | None:
    return _as_utc(v)  # type: ignore[return-value]


class FetchReport(BaseModel):
  tasks: list[Task] = Field(default_factory=list)
  sourcesAttempted: int = 0
  failedSources: list[str] = Field(default_factory=list)

  @property
  def allSourcesFailed(self) -> bool:
    return self.sourcesAttempted > 0 and len(self.failedSources) >= self.sourcesAttempted


class AlertBatchOut(BaseModel):
  alerts: list[TaskAlert]
  total: int
  failedSources: list[str] = Field(default_factory=list)


class RankedTaskOut(BaseModel):
  task: Task
  score: int


class DeliveryReportOut(BaseModel):
  delivered: list[str] = Field(default_factory=list)
  failed: dict[str, str] = Field(default_factory=dict)
