"""Command-line transport: a single ``cli`` session on stdin/stdout.

Run with ``python -m swiper.cli``; type ``quit`` or ``exit`` to leave.
"""
from __future__ import annotations

import asyncio
import logging
import os
import sys

from swiper.services.config_service import ConfigService
from swiper.services.dispatcher import create_dispatcher
from swiper.services.http_client import HttpClientService
from swiper.services.monitor_service import MonitorService

logger = logging.getLogger(__name__)

SESSION_ID = "cli"
QUIT_WORDS = {"quit", "exit"}


async def run_cli(data_dir: str) -> None:
    os.makedirs(data_dir, exist_ok=True)
    cfg = ConfigService(data_dir)
    cfg.load()
    http = HttpClientService()
    dispatcher = create_dispatcher(cfg, http)
    monitor = MonitorService(cfg, dispatcher.memory_service, dispatcher)
    dispatcher.monitor_service = monitor

    await dispatcher.start()
    monitor_task = asyncio.create_task(monitor.run())
    print('Swiper is listening. Type "help" to see what I can do.', flush=True)
    try:
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                break
            text = line.strip()
            if text.lower() in QUIT_WORDS:
                break
            if text:
                await dispatcher.accept_message("cli", SESSION_ID, text)
    finally:
        monitor_task.cancel()
        await asyncio.gather(monitor_task, return_exceptions=True)
        await monitor.stop()
        await dispatcher.stop()
        await http.close()


def main() -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    data_dir = os.environ.get("DATA_DIR", "/data" if os.path.exists("/data") else "./data")
    try:
        asyncio.run(run_cli(data_dir))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
