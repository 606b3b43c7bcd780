"""Monitor service: daily search of monitored content and upcoming-episode backoff.

Two kinds of tasks run here:

* the daily loop (:meth:`MonitorService.run`), which sleeps until the
  configured hour, searches every released monitored item and then scans
  for episodes entering their release window;
* one backoff task per upcoming episode, which re-searches that episode on
  the cumulative checkpoints of ``backoff_schedule`` (minutes after release)
  until it is found, removed, or the schedule is exhausted.

The set of upcoming episodes is in-memory only and rebuilt from the store
on start.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional

from swiper.errors import LockTimeout, StoreIOError
from swiper.models.content import Collection, Episode

if TYPE_CHECKING:
    from swiper.services.config_service import ConfigService
    from swiper.services.dispatcher import Dispatcher
    from swiper.services.memory_service import MemoryService

logger = logging.getLogger(__name__)


def get_backoff_minutes(elapsed: float, schedule: list[int]) -> Optional[float]:
    """Minutes from *elapsed* (minutes since release) to the next checkpoint.

    Checkpoints are the running sums of *schedule*.  Returns ``None`` once
    *elapsed* is past the last checkpoint.
    """
    total = 0
    for step in schedule:
        total += step
        if elapsed < total:
            return total - elapsed
    if elapsed == total:
        return 0
    return None


def seconds_until_hour(hour: int, now: datetime | None = None) -> float:
    """Seconds until the next *hour*:00 (tomorrow when that time has passed today)."""
    now = now or datetime.now()
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


def released_part(item, now: datetime):
    """What of *item* can be downloaded now: the item, a reduced copy, or None."""
    if isinstance(item, Collection):
        return item.released(now)
    if item.is_released(now):
        return item
    return None


class MonitorService:
    """Automatic searching for monitored content."""

    def __init__(
        self,
        config_service: "ConfigService",
        memory_service: "MemoryService",
        dispatcher: "Dispatcher",
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config_service = config_service
        self.memory_service = memory_service
        self.dispatcher = dispatcher
        self.now = clock
        self._upcoming: list[Episode] = []
        self._tasks: dict[tuple, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Daily loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Run forever; a failing step is logged and the next day still comes."""
        try:
            await self.scan_upcoming()
        except Exception:
            logger.exception("Monitor: initial upcoming scan failed")

        while True:
            delay = seconds_until_hour(self.config_service.get_monitor_hour(), self.now())
            logger.info(f"Monitor: next search in {delay / 3600:.1f}h")
            await asyncio.sleep(delay)
            try:
                await self.search_monitored()
            except Exception:
                logger.exception("Monitor: search of monitored content failed")
            try:
                await self.scan_upcoming()
            except Exception:
                logger.exception("Monitor: upcoming scan failed")

    async def search_monitored(self) -> None:
        """Try to download every released monitored item.

        Items are grouped by owning session; each session works through its
        items one at a time in title order, sessions run side by side.
        """
        try:
            memory = await self.memory_service.read_memory()
        except (LockTimeout, StoreIOError) as e:
            logger.error(f"Monitor: cannot read monitored content: {e}")
            return

        now = self.now()
        by_owner: dict[Optional[str], list] = {}
        for item in memory.monitored:
            part = released_part(item, now)
            if part is not None:
                by_owner.setdefault(item.swiper_id, []).append(part)

        logger.info(
            f"Monitor: searching {sum(len(v) for v in by_owner.values())} released item(s) "
            f"for {len(by_owner)} session(s)"
        )
        await asyncio.gather(*(self._search_for_owner(owner, items) for owner, items in by_owner.items()))

    async def _search_for_owner(self, owner: Optional[str], items: list) -> None:
        session = self.dispatcher.get_session(owner)
        if session is None:
            logger.warning(f"Monitor: no session {owner!r} for {len(items)} monitored item(s)")
            return
        for item in sorted(items, key=lambda i: i.title):
            try:
                await session.queue_download(item, no_prompt=True)
            except Exception:
                logger.exception(f"Monitor: download attempt for {item.get_desc()} failed")

    # ------------------------------------------------------------------
    # Upcoming episodes
    # ------------------------------------------------------------------

    def get_upcoming(self) -> list[Episode]:
        return list(self._upcoming)

    def is_tracked(self, ep: Episode) -> bool:
        return any(tracked == ep for tracked in self._upcoming)

    def _window(self, now: datetime) -> tuple[datetime, datetime]:
        lead = timedelta(hours=self.config_service.get_upcoming_lead_hours())
        tail = timedelta(minutes=sum(self.config_service.get_backoff_schedule()))
        return now - tail, now + lead

    async def scan_upcoming(self, now: datetime | None = None) -> list[Episode]:
        """Start tracking monitored episodes that are about to release or just did."""
        try:
            memory = await self.memory_service.read_memory()
        except (LockTimeout, StoreIOError) as e:
            logger.error(f"Monitor: cannot scan for upcoming episodes: {e}")
            return []

        now = now or self.now()
        start, end = self._window(now)
        added = []
        for item in memory.monitored:
            if isinstance(item, Collection):
                episodes = item.episodes
            elif isinstance(item, Episode):
                episodes = [item]
            else:
                continue
            for ep in episodes:
                if ep.release_date is None or not (start <= ep.release_date <= end):
                    continue
                if self.is_tracked(ep):
                    continue
                tracked = ep.model_copy(update={"swiper_id": item.swiper_id})
                self._track(tracked)
                added.append(tracked)
        if added:
            logger.info(f"Monitor: tracking {len(added)} upcoming episode(s)")
        return added

    def _track(self, ep: Episode) -> None:
        self._upcoming.append(ep)
        key = (ep.title, ep.season_num, ep.episode_num)
        self._tasks[key] = asyncio.create_task(self._track_upcoming(ep))

    def _untrack(self, ep: Episode) -> None:
        self._upcoming = [tracked for tracked in self._upcoming if tracked != ep]
        self._tasks.pop((ep.title, ep.season_num, ep.episode_num), None)

    async def _still_monitored(self, ep: Episode) -> bool:
        try:
            memory = await self.memory_service.read_memory()
        except (LockTimeout, StoreIOError):
            return True
        return any(item.title == ep.title and item.contains_any(ep) for item in memory.monitored)

    async def _track_upcoming(self, ep: Episode) -> None:
        try:
            while True:
                elapsed = (self.now() - ep.release_date).total_seconds() / 60
                wait = get_backoff_minutes(elapsed, self.config_service.get_backoff_schedule())
                if wait is None:
                    logger.info(f"Monitor: giving up on {ep.get_desc()}, backoff exhausted")
                    return
                await asyncio.sleep(wait * 60)

                if not self.is_tracked(ep):
                    return
                if not await self._still_monitored(ep):
                    logger.info(f"Monitor: {ep.get_desc()} no longer monitored")
                    return
                session = self.dispatcher.get_session(ep.swiper_id)
                if session is not None:
                    logger.info(f"Monitor: searching upcoming {ep.get_desc()}")
                    try:
                        await session.queue_download(ep.model_copy(), no_prompt=True)
                    except Exception:
                        logger.exception(f"Monitor: search for {ep.get_desc()} failed")

                await asyncio.sleep(self.config_service.get_upcoming_cooldown())
                if not await self._still_monitored(ep):
                    logger.info(f"Monitor: {ep.get_desc()} no longer monitored")
                    return
        finally:
            self._untrack(ep)

    async def stop(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._upcoming.clear()
