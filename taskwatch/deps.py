from __future__ import annotations

import logging

from taskwatch.alerts.documents import DocumentCorrelator
from taskwatch.alerts.monitor import TaskMonitor
from taskwatch.config import load_workspace_configs
from taskwatch.db import SessionLocal
from taskwatch.errors import NotInitializedError
from taskwatch.monday.workspace import WorkspaceManager
from taskwatch.repositories import SqlAlertRepository, SqlUserMappingRepository
from taskwatch.sharepoint.client import SharePointSearch

logger = logging.getLogger(__name__)

_monitor: TaskMonitor | None = None


async def build_monitor() -> TaskMonitor:
  configs = load_workspace_configs()
  if not configs:
    logger.warning("No monday.com workspaces configured (set MONDAY_API_KEY or MONDAY_WORKSPACE_1_API_KEY)")
  manager = WorkspaceManager()
  await manager.initialize(configs)
  return TaskMonitor(
    manager,
    SqlAlertRepository(SessionLocal),
    SqlUserMappingRepository(SessionLocal),
    correlator=DocumentCorrelator(SharePointSearch.from_settings()),
  )


def set_monitor(monitor: TaskMonitor | None) -> None:
  global _monitor
  _monitor = monitor


async def get_monitor() -> TaskMonitor:
  if _monitor is None:
    raise NotInitializedError("Task monitor is not ready yet")
  return _monitor
