"""Swiper session: one conversation plus its share of the download slots.

A session reads commands from its inbox, talks back through the
notification service, and owns the ephemeral download state attributed to
it: ``download_count`` and the transfer tasks it started.  Durable state
(monitored and queued) lives in the memory document.

``download_count`` counts running transfers *and* slots reserved for videos
whose torrent is still being selected.  Reservations are taken before the
first suspension point of ``queue_download``, so concurrent callers can
never push the count past ``max_downloads``.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from swiper.errors import CancelCommand, InputError, LockTimeout, NotFound, StoreIOError, TransferError
from swiper.models.commands import COMMANDS, lookup_command
from swiper.models.content import Collection
from swiper.services.parse_service import (
    aired_string,
    capture_episode,
    capture_number,
    capture_pick,
    capture_season,
    match_response,
    morning,
    parse_title,
    split_first,
)

if TYPE_CHECKING:
    from swiper.models.torrent import Torrent
    from swiper.services.dispatcher import Dispatcher

logger = logging.getLogger(__name__)


class Swiper:
    def __init__(self, dispatcher: "Dispatcher", session_type: str, session_id: str):
        self.dispatcher = dispatcher
        self.session_type = session_type
        self.session_id = session_id

        self.downloading = dispatcher.downloading
        self.download_count = 0
        self._active: dict[int, tuple] = {}  # id(video) -> (video, transfer task)
        self._inbox: asyncio.Queue[str] = asyncio.Queue()
        self._loop_task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"Swiper({self.session_type}:{self.session_id})"

    @property
    def max_downloads(self) -> int:
        return self.dispatcher.config_service.get_max_downloads()

    def start(self) -> None:
        """Run the command loop and fill free slots from the queue."""
        self._loop_task = asyncio.create_task(self.command_loop())
        self.dispatcher.spawn(self._download_from_queue(self.max_downloads))

    async def stop(self) -> None:
        """Stop the command loop and stop tracking transfers (torrents keep their data)."""
        tasks = [task for _, task in self._active.values()]
        if self._loop_task:
            tasks.append(self._loop_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Conversation I/O
    # ------------------------------------------------------------------

    async def to_swiper(self, text: str) -> None:
        await self._inbox.put(text)

    async def send(self, text: str) -> None:
        await self.dispatcher.notification_service.send(self.session_type, self.session_id, text)

    async def await_input(self, message: Optional[str] = None) -> str:
        if message:
            await self.send(message)
        text = (await self._inbox.get()).strip()
        if text.lower() == "cancel":
            raise CancelCommand()
        return text

    async def await_response(self, message: str, possible: list[str]) -> tuple[str, str]:
        """Prompt until the reply matches exactly one of *possible* replies."""
        prompt = message
        while True:
            text = await self.await_input(prompt)
            try:
                return text, match_response(text, possible)
            except InputError:
                prompt = f"I'm not sure I understand. {message}"

    async def command_loop(self, message: Optional[str] = None) -> None:
        while True:
            try:
                text = await self.await_input(message)
                message = None
                if text:
                    message = await self.parse_command(text)
            except CancelCommand:
                message = "Ok, nevermind. Need anything else?"
            except (InputError, NotFound) as e:
                message = str(e)
            except Exception:
                logger.exception(f"{self!r}: command failed")
                message = "Something went wrong. What do you need?"

    async def parse_command(self, text: str) -> Optional[str]:
        word, rest = split_first(text)
        info = lookup_command(word)
        if not info or not info.get("func"):
            raise InputError('Not recognized. Type "help" to see what I can do.')
        return await getattr(self, info["func"])(rest)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def get_status(self, _: str = "") -> str:
        try:
            memory = await self.dispatcher.memory_service.read_memory()
        except (LockTimeout, StoreIOError) as e:
            logger.error(f"{self!r}: status unavailable: {e}")
            return "I can't read my memory right now, try again in a minute."

        def mark(item) -> str:
            return "* " if item.swiper_id == self.session_id else "  "

        monitored = []
        for item in memory.monitored:
            line = mark(item) + item.get_desc()
            if isinstance(item, Collection):
                airs = aired_string(getattr(item.get_next_release(), "release_date", None))
                if airs:
                    line += f"  ({airs})"
            monitored.append(line)
        queued = [mark(item) + item.get_desc() for item in memory.queued]
        downloading = [mark(v) + v.torrent.get_download_info() for v in self.downloading if v.torrent]

        return (
            "\nMonitoring:\n" + ("\n".join(monitored) or "None") + "\n\n"
            "Queued:\n" + ("\n".join(queued) or "None") + "\n\n"
            "Downloading:\n" + ("\n".join(downloading) or "None") + "\n"
        )

    async def monitor(self, text: str) -> str:
        content = await self._identify_content(text)
        return await self._monitor_content(content)

    async def download(self, text: str) -> Optional[str]:
        content = await self._identify_content(text)
        return await self.queue_download(content)

    async def search(self, text: str) -> Optional[str]:
        content = await self._identify_content(text)
        if isinstance(content, Collection):
            video, message = await self._resolve_search_to_episode(content)
            if video is None:
                return message
        else:
            video = content
        return await self._search_video(video)

    async def check(self, _: str = "") -> str:
        self.dispatcher.spawn(self.dispatcher.monitor_service.search_monitored())
        return "Search in progress."

    async def remove(self, text: str) -> str:
        content = await self._identify_content(text)
        return await self._remove_content(content)

    async def abort(self, _: str = "") -> str:
        for video, _task in list(self._active.values()):
            await self._cancel_download(video)
        await self._download_from_queue(self.max_downloads)
        return "Aborted current downloads."

    async def get_commands(self, text: str = "") -> str:
        if text.strip():
            return self._command_detail(text.strip())
        return f'Commands:\n{", ".join(COMMANDS)}\n\nType "help <command>" for details.'

    @staticmethod
    def _command_detail(cmd: str) -> str:
        info = COMMANDS.get(cmd.lower())
        if not info:
            return f"{cmd} isn't something I respond to."
        arg = f" {info['arg']}" if info.get("arg") else ""
        out = f"{cmd}{arg}:  {info['desc']}\n"
        if info.get("aliases"):
            out += f"Also: {', '.join(info['aliases'])}\n"
        if info.get("arg") == "<content>":
            out += (
                "\nWhere <content> is one of:\n"
                "    <movie> (<year>)\n"
                "    <series> (<year>) (season <num>) (episode <num>)\n"
            )
        return out

    # ------------------------------------------------------------------
    # Identify / monitor / remove
    # ------------------------------------------------------------------

    async def _identify_content(self, text: str):
        if not text.strip():
            raise InputError("You didn't specify anything.")
        request = parse_title(text)
        if not request.get("title"):
            raise InputError("I don't understand what the title is.")
        return await self.dispatcher.metadata_service.identify_content(self.session_id, request)

    async def _update(self, target: str, method: str, item) -> str:
        return await self.dispatcher.memory_service.update_memory(self.session_id, target, method, item)

    async def _monitor_content(self, content) -> str:
        if isinstance(content, Collection) and content.initial_type == "series":
            return await self._resolve_monitor_series(content)
        return await self._update("monitored", "add", content)

    async def _resolve_monitor_series(self, series: Collection) -> str:
        prompt = (
            'Type "series" to monitor the entire series, otherwise specify the season, '
            "or also the episode, you'd like monitored. To monitor new episodes only, "
            'type "new".'
        )
        while True:
            text, match = await self.await_response(prompt, ["series", "season_or_episode", "new"])
            if match == "series":
                return await self._update("monitored", "add", series)
            if match == "new":
                series.filter_new(morning())
                return await self._update("monitored", "add", series)

            season = capture_season(text)
            episode = capture_episode(text)
            if not season:
                await self.send('I don\'t understand. Try something like "season 1" or "s1 e2".')
                continue
            if not episode:
                series.filter_to_season(season)
                return await self._update("monitored", "add", series)
            ep = series.get_episode(season, episode)
            if ep is None:
                raise NotFound(f"I can't find {series.title} season {season} episode {episode}.")
            return await self._update("monitored", "add", ep)

    async def _remove_content(self, content) -> str:
        try:
            memory = await self.dispatcher.memory_service.read_memory()
        except (LockTimeout, StoreIOError) as e:
            logger.error(f"{self!r}: remove unavailable: {e}")
            return f"There was a problem removing {content.get_desc()}."

        found = False
        results = []
        for target in ("monitored", "queued"):
            items = getattr(memory, target)
            if any(item.contains_any(content) or content.contains_any(item) for item in items):
                found = True
                if await self._confirm(f"Remove {content.get_desc()} from {target}?"):
                    results.append(await self._update(target, "remove", content))

        for video in list(self.downloading):
            if content.contains_any(video):
                found = True
                if await self._confirm(f"Abort downloading {video.get_desc()}?"):
                    owner = self.dispatcher.get_session(video.swiper_id) or self
                    await owner._cancel_download(video)
                    results.append(f"Aborted {video.get_desc()}.")

        if not found:
            return f"{content.get_desc()} is not being monitored, queued or downloaded."
        return "\n".join(results) or "Ok."

    async def _confirm(self, prompt: str) -> bool:
        _, match = await self.await_response(prompt, ["yes", "no"])
        return match == "yes"

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def _resolve_search_to_episode(self, collection: Collection):
        """Narrow a collection to one episode, or queue the whole thing.

        Returns ``(episode, None)`` or ``(None, message)``.
        """
        breadth = collection.initial_type
        is_series = breadth == "series"
        prompt = (
            f'Give the {"season and " if is_series else ""}episode number{"s" if is_series else ""} '
            f'to search or type "download" to get the whole {breadth}.'
        )
        while True:
            text, match = await self.await_response(
                prompt, ["season_or_episode" if is_series else "episode", "download"]
            )
            if match == "download":
                return None, await self.queue_download(collection)

            if is_series:
                season = capture_season(text)
                if not season or not collection.has_season(season):
                    continue
            else:
                season = collection.initial_season
            episode = capture_episode(text)
            while not episode:
                episode = capture_number(await self.await_input("And the episode?"))

            ep = collection.get_episode(season, episode)
            if ep is None:
                await self.send(f"I can't find season {season} episode {episode}.")
                continue
            return ep, None

    async def _search_video(self, video) -> Optional[str]:
        while True:
            torrents = await self.dispatcher.search_service.search(video)
            if torrents:
                torrent = await self._pick_torrent(torrents)
                video.set_torrent(torrent)
                return await self.queue_download(video)

            _, match = await self.await_response(
                "I can't find any torrents right now. Would you like me to try again? "
                f'Otherwise type "monitor" and I\'ll keep an eye out for {video.get_desc()}.',
                ["monitor", "yes", "no"],
            )
            if match == "yes":
                continue
            if match == "monitor":
                return await self._monitor_content(video)
            return "Ok."

    async def _pick_torrent(self, torrents: list["Torrent"]) -> "Torrent":
        """Page through *torrents* until the user picks one."""
        n = self.dispatcher.config_service.get_display_torrents()
        start = 0
        while True:
            page = torrents[start:start + n]
            possible = ["download"]
            moves = []
            if start > 0:
                possible.append("prev")
                moves.append('"prev"')
            if start + n < len(torrents):
                possible.append("next")
                moves.append('"next"')
            move_str = ", ".join(moves) + ", or " if moves else ""
            listing = "".join(f"{start + i + 1}. {t}" for i, t in enumerate(page))

            text, match = await self.await_response(
                f"Found torrents:\n{listing}"
                f"Type {move_str}\"download\" followed by the number of the torrent you'd like.",
                possible,
            )
            if match == "prev":
                start -= n
            elif match == "next":
                start += n
            else:
                num = capture_pick(text)
                if num and 1 <= num <= len(torrents):
                    return torrents[num - 1]

    @staticmethod
    def _auto_pick_torrent(torrents: list["Torrent"], video_type: str, options: dict) -> Optional["Torrent"]:
        best, best_tier = None, 0
        for torrent in torrents:
            tier = torrent.get_tier(video_type, options)
            if tier > best_tier:
                best, best_tier = torrent, tier
        return best

    async def _select_torrent(self, video, quiet: bool) -> Optional["Torrent"]:
        """Choose a torrent for *video*; only prompts when not *quiet*."""
        if not quiet:
            await self.send(f"Looking for {video.get_desc()} downloads...")
        options = self.dispatcher.config_service.options
        while True:
            torrents = await self.dispatcher.search_service.search(video)
            best = self._auto_pick_torrent(torrents, video.get_type(), options)
            if best is not None or quiet:
                return best

            if not torrents:
                _, match = await self.await_response(
                    "I can't find any torrents right now. Would you like me to try again? "
                    f'Otherwise, type "monitor" and I\'ll keep an eye out for {video.get_desc()}.',
                    ["monitor", "yes", "no"],
                )
                if match == "yes":
                    continue
                if match == "monitor":
                    await self.send(await self._monitor_content(video))
                return None

            _, match = await self.await_response(
                "I can't find a good torrent. If you'd like to see the results for yourself, "
                f'type "search", otherwise type "monitor" and I\'ll keep an eye out for {video.get_desc()}.',
                ["search", "monitor"],
            )
            if match == "search":
                return await self._pick_torrent(torrents)
            await self.send(await self._monitor_content(video))
            return None

    # ------------------------------------------------------------------
    # Download gate
    # ------------------------------------------------------------------

    def _release_slot(self) -> None:
        self.download_count = max(self.download_count - 1, 0)

    async def queue_download(self, content, no_prompt: bool = False) -> Optional[str]:
        """Start what fits in the free slots and queue the rest.

        With *no_prompt* (and for collections) nothing is asked of the user;
        a video whose torrent cannot be chosen is monitored instead.
        """
        add_count = max(self.max_downloads - self.download_count, 0)
        is_collection = isinstance(content, Collection)
        ready: list = []
        queue_item = None
        if is_collection:
            ready = content.pop_episodes(add_count)
            queue_item = None if content.is_empty() else content
        elif add_count > 0:
            ready = [content]
        else:
            queue_item = content
        self.download_count += len(ready)

        messages = []
        if queue_item is not None:
            messages.append(await self._update("queued", "add", queue_item))

        quiet = no_prompt or is_collection
        results = await asyncio.gather(*(self._download_ready(video, quiet) for video in ready))

        for video, started in zip(ready, results):
            if started or not quiet:
                continue
            if not no_prompt:
                await self.send(f"Failed to find {video.get_desc()}, adding to monitored.")
            await self._update("monitored", "add", video)
            self.dispatcher.spawn(self._download_from_queue())

        if is_collection and any(results):
            messages.insert(0, f"Downloading {sum(results)} of {content.title}.")
        return "\n".join(messages) or None

    async def _download_ready(self, video, quiet: bool) -> bool:
        """Select a torrent if needed and start the transfer in the reserved slot."""
        try:
            if video.torrent is None:
                torrent = await self._select_torrent(video, quiet)
                if torrent is None:
                    self._release_slot()
                    return False
                video.set_torrent(torrent)
        except Exception:
            self._release_slot()
            if not quiet:
                raise
            logger.exception(f"{self!r}: torrent selection for {video.get_desc()} failed")
            return False
        except BaseException:
            self._release_slot()
            raise
        await self._start_download(video, announce=not quiet)
        return True

    async def _start_download(self, video, announce: bool = False) -> None:
        if announce:
            await self.send('Download starting. Type "abort" to stop, or "status" to view progress.')
        for target in ("monitored", "queued"):
            await self._update(target, "remove", video)
        self.downloading.append(video)
        task = asyncio.create_task(self._run_download(video))
        self._active[id(video)] = (video, task)
        logger.info(f"{self!r}: downloading {video.get_desc()} ({self.download_count}/{self.max_downloads})")

    async def _run_download(self, video) -> None:
        torrent = video.torrent
        client = self.dispatcher.torrent_client
        try:
            await client.download(torrent)
        except Exception as e:
            if self._active.pop(id(video), None) is None:
                return
            if isinstance(e, TransferError):
                logger.error(f"{self!r}: transfer of {video.get_desc()} failed: {e}")
            else:
                logger.exception(f"{self!r}: transfer of {video.get_desc()} crashed")
            await self._fail_download(video)
            return

        self._active.pop(id(video), None)
        self._pop_download(video)
        exported = await self.dispatcher.export_service.export_video(video)
        try:
            await client.remove(torrent)
        except TransferError as e:
            logger.warning(f"{self!r}: could not forget finished torrent {torrent.name}: {e}")
        self._release_slot()
        if exported:
            await self.send(f"{video.get_desc()} download complete!")
        else:
            await self.send(f"{video.get_desc()} downloaded, but I couldn't move it into the library.")
        await self._download_from_queue()

    async def _fail_download(self, video) -> None:
        """Cancel the transfer, free the slot and fall back to monitoring."""
        await self.send(f"{video.get_desc()} download failed, I'll keep an eye out for it.")
        try:
            await self.dispatcher.torrent_client.cancel(video.torrent)
        except TransferError as e:
            logger.warning(f"{self!r}: cancel after failure: {e}")
        self._pop_download(video)
        self._release_slot()
        video.set_torrent(None)
        await self._update("monitored", "add", video)
        await self._download_from_queue()

    async def _cancel_download(self, video) -> None:
        entry = self._active.pop(id(video), None)
        if entry is None:
            return
        _, task = entry
        if not task.done():
            task.cancel()
        self._pop_download(video)
        self._release_slot()
        try:
            await self.dispatcher.torrent_client.cancel(video.torrent)
        except TransferError as e:
            logger.warning(f"{self!r}: cancel of {video.get_desc()}: {e}")
        logger.info(f"{self!r}: cancelled {video.get_desc()}")

    def _pop_download(self, video) -> None:
        for i, active in enumerate(self.downloading):
            if active is video:
                del self.downloading[i]
                return

    async def _download_from_queue(self, count: int = 1) -> None:
        """Start up to *count* queued videos of this session, oldest first."""
        while count > 0 and self.download_count < self.max_downloads:
            item = await self.dispatcher.memory_service.pop_queued(self.session_id)
            if item is None:
                return
            count -= 1 if item.is_video() else len(item.episodes)
            await self.queue_download(item, no_prompt=True)
