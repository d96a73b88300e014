from __future__ import annotations

from fastapi import APIRouter, Depends

from taskwatch.alerts.monitor import TaskMonitor
from taskwatch.config import settings
from taskwatch.deps import get_monitor
from taskwatch.notifications.service import provider_for
from taskwatch.schemas import AlertBatchOut, DeliveryReportOut

router = APIRouter(prefix="/triggers", tags=["triggers"])


@router.post("/daily", response_model=AlertBatchOut)
async def trigger_daily(monitor: TaskMonitor = Depends(get_monitor)) -> AlertBatchOut:
  return await monitor.process_daily()


@router.post("/weekly", response_model=AlertBatchOut)
async def trigger_weekly(monitor: TaskMonitor = Depends(get_monitor)) -> AlertBatchOut:
  return await monitor.process_weekly()


@router.post("/deliver", response_model=DeliveryReportOut)
async def trigger_deliver(monitor: TaskMonitor = Depends(get_monitor)) -> DeliveryReportOut:
  return await monitor.deliver_pending(provider_for(settings.delivery_provider))


@router.post("/purge")
async def trigger_purge(days: int | None = None, monitor: TaskMonitor = Depends(get_monitor)) -> dict:
  removed = await monitor.purge_alerts_older_than(days)
  return {"removed": removed}
