"""
Notification monitoring API - volume, delivery metrics, and recent attempts.
Reads from the process-wide EmailMonitor; nothing here sends email.
"""
import logging
from dataclasses import asdict
from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from paynotify.services.container import Services, get_services

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("/metrics")
async def get_metrics(services: Services = Depends(get_services)):
    monitor = services.monitor
    return {
        "metrics": monitor.get_metrics(),
        "warnings": monitor.get_threshold_warnings(),
        "queue_pending": services.queue.pending(),
    }


@router.get("/volume")
async def get_volume(services: Services = Depends(get_services)):
    status = services.monitor.get_volume_status()
    decision = services.monitor.can_send()
    return {**status, "can_send": decision["allowed"], "reason": decision["reason"]}


@router.get("/logs")
async def get_logs(
    limit: int = Query(50, ge=1, le=1000),
    type: str = Query(None),
    failed: bool = Query(False),
    services: Services = Depends(get_services),
):
    """Most recent attempts first. `type` and `failed` narrow the window."""
    monitor = services.monitor
    if failed:
        entries = monitor.get_failed_logs(limit)
    elif type:
        entries = monitor.get_logs_by_type(type, limit)
    else:
        entries = monitor.get_recent_logs(limit)
    return {"logs": [asdict(e) for e in entries], "count": len(entries)}


@router.get("/report", response_class=PlainTextResponse)
async def get_report(services: Services = Depends(get_services)):
    return services.monitor.generate_report()


@router.post("/reset")
async def reset_metrics(services: Services = Depends(get_services)):
    services.monitor.reset_metrics()
    await services.monitor.persist()
    logger.info("Notification metrics reset via API")
    return {"reset": True}
