"""Dispatcher: owns the store, the shared download list and the sessions."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from swiper.errors import LockTimeout, StoreIOError
from swiper.services.export_service import ExportService
from swiper.services.memory_service import MemoryService
from swiper.services.metadata_service import MetadataService
from swiper.services.notification_service import NotificationService
from swiper.services.search_service import SearchService
from swiper.services.session import Swiper
from swiper.services.torrent_client import TorrentClient

if TYPE_CHECKING:
    from swiper.services.config_service import ConfigService
    from swiper.services.http_client import HttpClientService
    from swiper.services.monitor_service import MonitorService

logger = logging.getLogger(__name__)


class Dispatcher:
    """Routes inbound messages to sessions and holds what they share.

    ``downloading`` is the process-wide list of videos being transferred;
    sessions append and remove their own entries, everyone else only reads.
    """

    def __init__(
        self,
        config_service: "ConfigService",
        memory_service: MemoryService,
        metadata_service: MetadataService,
        search_service: SearchService,
        torrent_client: TorrentClient,
        export_service: ExportService,
        notification_service: NotificationService,
    ):
        self.config_service = config_service
        self.memory_service = memory_service
        self.metadata_service = metadata_service
        self.search_service = search_service
        self.torrent_client = torrent_client
        self.export_service = export_service
        self.notification_service = notification_service
        self.monitor_service: Optional["MonitorService"] = None

        self.downloading: list = []
        self.sessions: dict[str, Swiper] = {}
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def spawn(self, coro) -> asyncio.Task:
        """Run *coro* in the background, logging (not raising) its failure."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task failed", exc_info=exc)

    async def wait_idle(self) -> None:
        """Wait for the background tasks started so far (and any they start)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _create_session(self, session_type: str, session_id: str) -> Swiper:
        session = Swiper(self, session_type, session_id)
        self.sessions[session_id] = session
        session.start()
        logger.info(f"Session started: {session_type}:{session_id}")
        return session

    async def start(self) -> None:
        """Restore the sessions registered in the memory document."""
        try:
            memory = await self.memory_service.read_memory()
        except (LockTimeout, StoreIOError) as e:
            logger.error(f"Could not restore sessions: {e}")
            return
        for descriptor in memory.sessions:
            if descriptor.session_id not in self.sessions:
                self._create_session(descriptor.session_type, descriptor.session_id)
        logger.info(f"Restored {len(memory.sessions)} session(s)")

    def get_session(self, session_id: Optional[str]) -> Optional[Swiper]:
        if session_id is None:
            return None
        return self.sessions.get(session_id)

    async def accept_message(self, session_type: str, session_id: str, text: str) -> Swiper:
        session = self.sessions.get(session_id)
        if session is None:
            session = self._create_session(session_type, session_id)
            await self.memory_service.save_session(session_type, session_id)
        await session.to_swiper(text)
        return session

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def get_status(self) -> dict:
        try:
            memory = await self.memory_service.read_memory()
        except (LockTimeout, StoreIOError) as e:
            logger.error(f"Status unavailable: {e}")
            memory = None
        upcoming = self.monitor_service.get_upcoming() if self.monitor_service else []
        return {
            "monitored": [item.to_object() for item in memory.monitored] if memory else None,
            "queued": [item.to_object() for item in memory.queued] if memory else None,
            "downloading": [
                {
                    "swiperId": video.swiper_id,
                    "desc": video.get_desc(),
                    "info": video.torrent.get_download_info() if video.torrent else "",
                    "progress": video.torrent.progress if video.torrent else 0.0,
                }
                for video in self.downloading
            ],
            "upcoming": [ep.to_object() for ep in upcoming],
            "sessions": {sid: s.download_count for sid, s in self.sessions.items()},
        }

    async def stop(self) -> None:
        for session in self.sessions.values():
            await session.stop()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("Dispatcher stopped")


def create_dispatcher(config_service: "ConfigService", http_client: "HttpClientService") -> Dispatcher:
    """Wire the store and the external collaborators around a new Dispatcher."""
    memory_service = MemoryService(config_service)
    memory_service.init_memory()
    return Dispatcher(
        config_service,
        memory_service,
        MetadataService(config_service, http_client),
        SearchService(config_service, http_client),
        TorrentClient(config_service, http_client),
        ExportService(config_service),
        NotificationService(config_service, http_client),
    )
