from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from taskwatch.alerts.monitor import TaskMonitor
from taskwatch.deps import get_monitor
from taskwatch.schemas import AlertBatchOut, RankedTaskOut, TaskAlert

router = APIRouter(tags=["tasks"])


@router.get("/tasks", response_model=AlertBatchOut)
async def list_tasks(
  range: Literal["today", "week", "overdue", "upcoming"] = "today",
  slackUserId: str | None = None,
  monitor: TaskMonitor = Depends(get_monitor),
) -> AlertBatchOut:
  return await monitor.tasks_on_demand(range, slackUserId)


@router.get("/search", response_model=list[RankedTaskOut])
async def search_tasks(
  q: str = Query(min_length=1),
  minScore: int | None = Query(default=None, ge=0),
  monitor: TaskMonitor = Depends(get_monitor),
) -> list[RankedTaskOut]:
  ranked = await monitor.search(q.strip(), min_score=minScore)
  return [RankedTaskOut(task=r.item, score=r.score) for r in ranked]


@router.get("/alerts/pending", response_model=list[TaskAlert])
async def pending_alerts(monitor: TaskMonitor = Depends(get_monitor)) -> list[TaskAlert]:
  return await monitor.pending_alerts()


@router.post("/alerts/{alert_id}/sent")
async def mark_alert_sent(alert_id: str, monitor: TaskMonitor = Depends(get_monitor)) -> dict:
  if not alert_id.strip():
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="alert id is required")
  await monitor.mark_sent(alert_id)
  return {"ok": True}
