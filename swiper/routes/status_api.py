"""Status and monitoring routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from swiper.dependencies import get_dispatcher, get_monitor_service
from swiper.services.dispatcher import Dispatcher
from swiper.services.monitor_service import MonitorService

router = APIRouter(tags=["status"])


@router.get("/api/status")
async def get_status(dispatcher: Dispatcher = Depends(get_dispatcher)):
    return await dispatcher.get_status()


@router.post("/api/monitor/check")
async def check_monitored(
    dispatcher: Dispatcher = Depends(get_dispatcher),
    monitor: MonitorService = Depends(get_monitor_service),
):
    dispatcher.spawn(monitor.search_monitored())
    return {"status": "started"}


@router.get("/api/monitor/upcoming")
async def get_upcoming(monitor: MonitorService = Depends(get_monitor_service)):
    return {"upcoming": [ep.to_object() for ep in monitor.get_upcoming()]}
