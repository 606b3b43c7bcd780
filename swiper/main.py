"""Swiper web application: chat webhooks, status and options over HTTP."""
from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from swiper.routes import config_api, health, message_api, status_api
from swiper.services.config_service import ConfigService
from swiper.services.dispatcher import create_dispatcher
from swiper.services.http_client import HttpClientService
from swiper.services.monitor_service import MonitorService

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
logger = logging.getLogger(__name__)

DATA_DIR = os.environ.get("DATA_DIR", "/data" if os.path.exists("/data") else "./data")

_monitor_task: Optional[asyncio.Task] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown"""
    global _monitor_task

    # Startup
    os.makedirs(DATA_DIR, exist_ok=True)
    cfg = ConfigService(DATA_DIR)
    cfg.load()
    http = HttpClientService()
    dispatcher = create_dispatcher(cfg, http)
    monitor = MonitorService(cfg, dispatcher.memory_service, dispatcher)
    dispatcher.monitor_service = monitor

    app.state.config_service = cfg
    app.state.http_client = http
    app.state.dispatcher = dispatcher
    app.state.monitor_service = monitor
    app.state.notification_service = dispatcher.notification_service

    await dispatcher.start()
    _monitor_task = asyncio.create_task(monitor.run())
    logger.info(f"Swiper started (data dir {DATA_DIR})")

    yield

    # Shutdown
    if _monitor_task:
        _monitor_task.cancel()
        try:
            await _monitor_task
        except asyncio.CancelledError:
            pass
    await monitor.stop()
    await dispatcher.stop()
    await http.close()
    logger.info("Application shutdown complete")


app = FastAPI(title="Swiper", lifespan=lifespan)

for r in (health, message_api, status_api, config_api):
    app.include_router(r.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "5000")))
