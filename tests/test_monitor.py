"""Tests for automatic searching: backoff arithmetic, daily search and upcoming tracking."""

import asyncio
from datetime import datetime, timedelta

from swiper.models.content import Collection, Episode, Movie
from swiper.services.config_service import ConfigService
from swiper.services.memory_service import MemoryService
from swiper.services.monitor_service import (
    MonitorService,
    get_backoff_minutes,
    released_part,
    seconds_until_hour,
)

NOW = datetime(2026, 1, 7, 12, 0)
SCHEDULE = [45, 15, 15, 15, 15, 30, 30, 60, 60, 120, 240, 480]


class RecordingSession:
    """Stands in for a session; records every queue_download call."""

    def __init__(self, session_id, events):
        self.session_id = session_id
        self.events = events

    async def queue_download(self, content, no_prompt=False):
        self.events.append((self.session_id, "start", content.get_desc(), no_prompt))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        self.events.append((self.session_id, "end", content.get_desc(), no_prompt))


class FakeDispatcher:
    def __init__(self, *session_ids):
        self.events = []
        self.sessions = {sid: RecordingSession(sid, self.events) for sid in session_ids}

    def get_session(self, session_id):
        return self.sessions.get(session_id)


def _monitor(tmp_path, dispatcher, clock=lambda: NOW, **options):
    cfg = ConfigService(str(tmp_path))
    cfg.load()
    if options:
        cfg.update_options(options)
    memory = MemoryService(cfg)
    memory.init_memory()
    return MonitorService(cfg, memory, dispatcher, clock=clock)


def _ep(n, release, title="Foo", season=1):
    return Episode(title=title, season_num=season, episode_num=n, release_date=release)


class TestBackoff:
    def test_checkpoints(self):
        assert sum(SCHEDULE) == 1125
        assert get_backoff_minutes(0, SCHEDULE) == 45
        assert get_backoff_minutes(44, SCHEDULE) == 1
        assert get_backoff_minutes(45, SCHEDULE) == 15
        assert get_backoff_minutes(60, SCHEDULE) == 15

    def test_last_checkpoint(self):
        assert get_backoff_minutes(1125, SCHEDULE) == 0
        assert get_backoff_minutes(1125.01, SCHEDULE) is None

    def test_before_release(self):
        assert get_backoff_minutes(-60, SCHEDULE) == 105

    def test_empty_schedule(self):
        assert get_backoff_minutes(0, []) == 0
        assert get_backoff_minutes(1, []) is None


class TestDailySchedule:
    def test_later_today(self):
        assert seconds_until_hour(3, datetime(2026, 1, 7, 2, 30)) == 1800

    def test_exactly_now_waits_a_day(self):
        assert seconds_until_hour(3, datetime(2026, 1, 7, 3, 0)) == 86400

    def test_passed_today(self):
        assert seconds_until_hour(3, datetime(2026, 1, 7, 4, 0)) == 82800


class TestReleasedPart:
    def test_movie_always_released(self):
        movie = Movie(title="Inception", year="2010")
        assert released_part(movie, NOW) is movie

    def test_episode(self):
        assert released_part(_ep(1, NOW - timedelta(days=1)), NOW) is not None
        assert released_part(_ep(1, NOW + timedelta(days=1)), NOW) is None
        assert released_part(_ep(1, None), NOW) is None

    def test_collection_reduced_copy(self):
        coll = Collection(title="Foo", episodes=[_ep(1, NOW - timedelta(days=7)), _ep(2, NOW + timedelta(days=7))])
        part = released_part(coll, NOW)
        assert [e.episode_num for e in part.episodes] == [1]
        assert len(coll.episodes) == 2


class TestSearchMonitored:
    """Released items are searched per owner, one at a time, in title order."""

    def test_grouping_and_order(self, tmp_path):
        dispatcher = FakeDispatcher("a", "b")
        monitor = _monitor(tmp_path, dispatcher)

        async def scenario():
            mem = monitor.memory_service
            await mem.update_memory("a", "monitored", "add", Movie(title="Zeta", year="2000"))
            await mem.update_memory("b", "monitored", "add", Movie(title="Mid", year="2000"))
            await mem.update_memory("a", "monitored", "add", Movie(title="Alpha", year="2000"))
            await mem.update_memory("a", "monitored", "add", Collection(
                title="Later", episodes=[_ep(1, NOW + timedelta(days=3), title="Later")]
            ))
            await mem.update_memory("b", "monitored", "add", Collection(
                title="Foo", episodes=[_ep(1, NOW - timedelta(days=3)), _ep(2, NOW + timedelta(days=3))]
            ))
            await monitor.search_monitored()

        asyncio.run(scenario())
        events = dispatcher.events

        a_events = [(kind, desc) for owner, kind, desc, _ in events if owner == "a"]
        assert a_events == [
            ("start", "Alpha (2000)"), ("end", "Alpha (2000)"),
            ("start", "Zeta (2000)"), ("end", "Zeta (2000)"),
        ]
        b_events = [(kind, desc) for owner, kind, desc, _ in events if owner == "b"]
        assert b_events == [
            ("start", "Foo S01E01"), ("end", "Foo S01E01"),
            ("start", "Mid (2000)"), ("end", "Mid (2000)"),
        ]
        assert all(no_prompt for *_, no_prompt in events)

    def test_sessions_run_side_by_side(self, tmp_path):
        dispatcher = FakeDispatcher("a", "b")
        monitor = _monitor(tmp_path, dispatcher)

        async def scenario():
            await monitor.memory_service.update_memory("a", "monitored", "add", Movie(title="One"))
            await monitor.memory_service.update_memory("b", "monitored", "add", Movie(title="Two"))
            await monitor.search_monitored()

        asyncio.run(scenario())
        kinds = [kind for _, kind, _, _ in dispatcher.events]
        assert kinds == ["start", "start", "end", "end"]

    def test_unknown_owner_skipped(self, tmp_path):
        dispatcher = FakeDispatcher("a")
        monitor = _monitor(tmp_path, dispatcher)

        async def scenario():
            await monitor.memory_service.update_memory("ghost", "monitored", "add", Movie(title="Lost"))
            await monitor.memory_service.update_memory("a", "monitored", "add", Movie(title="Found"))
            await monitor.search_monitored()

        asyncio.run(scenario())
        assert [desc for _, kind, desc, _ in dispatcher.events if kind == "start"] == ["Found"]


class TestUpcoming:
    def test_scan_window(self, tmp_path):
        dispatcher = FakeDispatcher("a")
        monitor = _monitor(tmp_path, dispatcher)

        async def scenario():
            await monitor.memory_service.update_memory("a", "monitored", "add", Collection(title="Foo", episodes=[
                _ep(1, NOW - timedelta(days=2)),
                _ep(2, NOW - timedelta(minutes=30)),
                _ep(3, NOW + timedelta(hours=2)),
                _ep(4, NOW + timedelta(hours=48)),
                _ep(5, None),
            ]))
            await monitor.memory_service.update_memory("a", "monitored", "add", Movie(title="Bar"))
            first = await monitor.scan_upcoming(NOW)
            second = await monitor.scan_upcoming(NOW)
            upcoming = monitor.get_upcoming()
            await monitor.stop()
            return first, second, upcoming

        first, second, upcoming = asyncio.run(scenario())
        assert [ep.episode_num for ep in first] == [2, 3]
        assert all(ep.swiper_id == "a" for ep in first)
        assert second == []
        assert [ep.get_desc() for ep in upcoming] == ["Foo S01E02", "Foo S01E03"]

    def test_stop_clears_tracking(self, tmp_path):
        monitor = _monitor(tmp_path, FakeDispatcher("a"))

        async def scenario():
            await monitor.memory_service.update_memory("a", "monitored", "add", _ep(1, NOW + timedelta(hours=1)))
            await monitor.scan_upcoming(NOW)
            tracked = monitor.is_tracked(_ep(1, None))
            await monitor.stop()
            return tracked

        assert asyncio.run(scenario()) is True
        assert monitor.get_upcoming() == []

    def test_gives_up_when_schedule_exhausted(self, tmp_path):
        dispatcher = FakeDispatcher("a")
        monitor = _monitor(tmp_path, dispatcher)
        ep = _ep(1, NOW - timedelta(hours=20))
        ep.swiper_id = "a"

        async def scenario():
            monitor._track(ep)
            await monitor._tasks[(ep.title, ep.season_num, ep.episode_num)]

        asyncio.run(scenario())
        assert dispatcher.events == []
        assert monitor.get_upcoming() == []

    def test_searches_at_checkpoint_then_gives_up(self, tmp_path):
        times = [NOW, NOW + timedelta(minutes=1)]

        def clock():
            return times.pop(0) if len(times) > 1 else times[0]

        dispatcher = FakeDispatcher("a")
        monitor = _monitor(tmp_path, dispatcher, clock=clock, backoff_schedule=[0], upcoming_cooldown=0)
        ep = _ep(1, NOW)
        ep.swiper_id = "a"

        async def scenario():
            await monitor.memory_service.update_memory("a", "monitored", "add", _ep(1, NOW))
            monitor._track(ep)
            await monitor._tasks[(ep.title, ep.season_num, ep.episode_num)]

        asyncio.run(scenario())
        assert [(kind, desc) for _, kind, desc, _ in dispatcher.events] == [
            ("start", "Foo S01E01"), ("end", "Foo S01E01"),
        ]
        assert monitor.get_upcoming() == []

    def test_stops_when_no_longer_monitored(self, tmp_path):
        dispatcher = FakeDispatcher("a")
        monitor = _monitor(tmp_path, dispatcher, backoff_schedule=[0], upcoming_cooldown=0)
        ep = _ep(1, NOW)
        ep.swiper_id = "a"

        async def scenario():
            monitor._track(ep)
            await monitor._tasks[(ep.title, ep.season_num, ep.episode_num)]

        asyncio.run(scenario())
        assert dispatcher.events == []
        assert monitor.get_upcoming() == []

    def test_removed_episode_not_searched_again(self, tmp_path):
        dispatcher = FakeDispatcher("a")
        monitor = _monitor(tmp_path, dispatcher, backoff_schedule=[0, 5], upcoming_cooldown=0)
        ep = _ep(1, NOW)
        ep.swiper_id = "a"

        async def scenario():
            await monitor.memory_service.update_memory("a", "monitored", "add", _ep(1, NOW))
            await monitor.memory_service.update_memory("a", "monitored", "remove", _ep(1, NOW))
            monitor._track(ep)
            await monitor._tasks[(ep.title, ep.season_num, ep.episode_num)]

        asyncio.run(scenario())
        assert dispatcher.events == []
        assert monitor.get_upcoming() == []
