"""Memory service: the locked JSON document holding monitored, queued and sessions.

Every read and every read-modify-write goes through :class:`MemoryLock`,
which serializes access inside the process (``asyncio.Lock``) and across
processes (``fcntl.flock`` on a sibling lock file).  Writes are atomic: the
whole document is serialized in memory, written to a temp file and moved
over the live file with ``os.replace``.
"""
from __future__ import annotations

import asyncio
import fcntl
import json
import logging
import os
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Callable, Optional

from pydantic import ValidationError

from swiper.errors import LockTimeout, StoreIOError
from swiper.models.memory import Memory, SessionDescriptor
from swiper.services.reconcile_service import add_content, remove_content

if TYPE_CHECKING:
    from swiper.services.config_service import ConfigService

logger = logging.getLogger(__name__)

MEMORY_FILE = "memory.json"
LOCK_FILE = "memory.lock"
TARGETS = ("monitored", "queued")
METHODS = ("add", "remove")


class MemoryLock:
    """Named advisory lock with a bounded wait."""

    def __init__(self, lock_path: str, timeout: Callable[[], float]):
        self.lock_path = lock_path
        self._timeout = timeout
        self._local = asyncio.Lock()

    @asynccontextmanager
    async def hold(self):
        timeout = self._timeout()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        acquire = asyncio.ensure_future(self._local.acquire())
        try:
            await asyncio.wait({acquire}, timeout=timeout)
        except asyncio.CancelledError:
            self._abandon(acquire)
            raise
        if not acquire.done():
            self._abandon(acquire)
            raise LockTimeout(f"Memory lock not acquired within {timeout}s")
        try:
            with open(self.lock_path, "a+") as lf:
                while True:
                    try:
                        fcntl.flock(lf.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                        break
                    except BlockingIOError:
                        if loop.time() >= deadline:
                            raise LockTimeout(f"Memory lock file busy for {timeout}s") from None
                        await asyncio.sleep(0.05)
                try:
                    yield
                finally:
                    fcntl.flock(lf.fileno(), fcntl.LOCK_UN)
        finally:
            self._local.release()

    def _abandon(self, acquire: asyncio.Future) -> None:
        """Cancel a pending acquire; give the lock back if it won the race."""
        acquire.cancel()
        acquire.add_done_callback(lambda task: task.cancelled() or self._local.release())


class MemoryService:
    """Owns the memory document; the only durable state of the application."""

    def __init__(self, config_service: "ConfigService"):
        self._cfg = config_service
        self.memory_file = os.path.join(config_service.data_dir, MEMORY_FILE)
        self.lock = MemoryLock(
            os.path.join(config_service.data_dir, LOCK_FILE),
            config_service.get_lock_timeout,
        )

    # ------------------------------------------------------------------
    # File helpers (callers hold the lock)
    # ------------------------------------------------------------------

    def init_memory(self) -> None:
        """Create an empty document on first start."""
        os.makedirs(os.path.dirname(self.memory_file) or ".", exist_ok=True)
        if not os.path.exists(self.memory_file):
            with open(self.memory_file, "w") as f:
                json.dump(Memory().to_object(), f, indent=2)
            logger.info(f"Created memory document at {self.memory_file}")

    def _read(self) -> Memory:
        try:
            with open(self.memory_file) as f:
                data = json.load(f)
            return Memory.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise StoreIOError(f"Error reading {self.memory_file}: {e}") from e

    def _write(self, memory: Memory) -> None:
        payload = json.dumps(memory.to_object(), indent=2)
        tmp = f"{self.memory_file}.{os.getpid()}.tmp"
        try:
            with open(tmp, "w") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.memory_file)
        except OSError as e:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise StoreIOError(f"Error writing {self.memory_file}: {e}") from e

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def read_memory(self) -> Memory:
        """Return the typed document.  Raises LockTimeout / StoreIOError."""
        async with self.lock.hold():
            return self._read()

    async def update_memory(self, session_id: Optional[str], target: str, method: str, item) -> str:
        """Add or remove *item* in *target* and describe the outcome.

        Never raises for lock or I/O problems; those come back as a message
        and leave the document as it was.
        """
        if target not in TARGETS or method not in METHODS:
            raise ValueError(f"Unsupported memory update: {method} {target}")

        desc = item.get_desc()
        if method == "add" and item.swiper_id is None:
            item.swiper_id = session_id

        try:
            async with self.lock.hold():
                memory = self._read()
                items = getattr(memory, target)
                if method == "add":
                    reason = add_content(items, item, target)
                else:
                    reason = remove_content(items, item, target)
                if reason:
                    return reason
                self._write(memory)
        except (LockTimeout, StoreIOError) as e:
            logger.error(f"Memory update failed ({method} {desc} in {target}): {e}")
            if method == "add":
                return f"There was a problem adding {desc} to {target}."
            return f"There was a problem removing {desc} from {target}."

        logger.info(f"Memory: {method} {desc} ({target})")
        if method == "add":
            return f"Added {desc} to {target}."
        return f"Removed {desc} from {target}."

    async def pop_queued(self, session_id: str):
        """Remove and return the oldest queued item owned by *session_id*."""
        try:
            async with self.lock.hold():
                memory = self._read()
                for i, item in enumerate(memory.queued):
                    if item.swiper_id == session_id:
                        del memory.queued[i]
                        self._write(memory)
                        return item
        except (LockTimeout, StoreIOError) as e:
            logger.error(f"Could not pop queue of session {session_id}: {e}")
        return None

    async def save_session(self, session_type: str, session_id: str) -> bool:
        """Register a session so it is restored on the next start."""
        try:
            async with self.lock.hold():
                memory = self._read()
                if any(s.session_id == session_id for s in memory.sessions):
                    return False
                memory.sessions.append(SessionDescriptor(session_type=session_type, session_id=session_id))
                self._write(memory)
        except (LockTimeout, StoreIOError) as e:
            logger.error(f"Could not save session {session_type}:{session_id}: {e}")
            return False
        return True
