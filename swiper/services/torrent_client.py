"""Torrent client: drives transfers through the qBittorrent Web API (v2)."""
from __future__ import annotations

import asyncio
import base64
import logging
import re
import uuid
from typing import TYPE_CHECKING, Optional

import httpx

from swiper.errors import TransferError

if TYPE_CHECKING:
    from swiper.models.torrent import Torrent
    from swiper.services.config_service import ConfigService
    from swiper.services.http_client import HttpClientService

logger = logging.getLogger(__name__)

ERROR_STATES = {"error", "missingFiles"}
COMPLETE_STATES = {"uploading", "stalledUP", "pausedUP", "stoppedUP", "queuedUP", "forcedUP"}
ADD_GRACE_POLLS = 12

_BTIH_RE = re.compile(r"urn:btih:([a-zA-Z0-9]+)")


def info_hash_from_magnet(magnet: str) -> Optional[str]:
    """Hex info hash of a magnet link (base32 hashes are converted)."""
    m = _BTIH_RE.search(magnet or "")
    if not m:
        return None
    raw = m.group(1)
    if len(raw) == 40:
        return raw.lower()
    if len(raw) == 32:
        try:
            return base64.b32decode(raw.upper()).hex()
        except ValueError:
            return None
    return None


class TorrentClient:
    """Thin async wrapper over the qBittorrent endpoints Swiper needs."""

    def __init__(self, config_service: "ConfigService", http_client: "HttpClientService"):
        self.config_service = config_service
        self.http_client = http_client
        self._authenticated = False
        self._auth_lock = asyncio.Lock()

    def _url(self, path: str) -> str:
        base = self.config_service.get_qbittorrent_config().get("url", "").rstrip("/")
        return f"{base}{path}"

    async def _login(self) -> None:
        cfg = self.config_service.get_qbittorrent_config()
        client = await self.http_client.get_client()
        try:
            resp = await client.post(
                self._url("/api/v2/auth/login"),
                data={"username": cfg.get("username", ""), "password": cfg.get("password", "")},
            )
        except httpx.HTTPError as e:
            raise TransferError(f"qBittorrent unreachable: {e}") from e
        self._authenticated = resp.status_code == 200 and resp.text.strip() == "Ok."
        if not self._authenticated:
            raise TransferError(f"qBittorrent login failed: {resp.status_code} {resp.text[:80]!r}")
        logger.info("qBittorrent session established")

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Call the Web API, logging in first and once more on 403."""
        async with self._auth_lock:
            if not self._authenticated:
                await self._login()
        client = await self.http_client.get_client()
        try:
            resp = await client.request(method, self._url(path), **kwargs)
            if resp.status_code == 403:
                async with self._auth_lock:
                    await self._login()
                resp = await client.request(method, self._url(path), **kwargs)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise TransferError(f"qBittorrent {path} failed: {e}") from e
        return resp

    async def _info(self, torrent: "Torrent", tag: str) -> Optional[dict]:
        params = {"hashes": torrent.info_hash} if torrent.info_hash else {"tag": tag}
        resp = await self._request("GET", "/api/v2/torrents/info", params=params)
        items = resp.json() or []
        return items[0] if items else None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def download(self, torrent: "Torrent") -> None:
        """Add *torrent* and wait until it completes.

        Progress, peers, speed, ETA and the content path are written onto
        *torrent* on every poll.  Raises TransferError on failure.
        """
        torrent.info_hash = torrent.info_hash or info_hash_from_magnet(torrent.magnet_link)
        tag = f"swiper-{uuid.uuid4().hex[:12]}"
        await self._request("POST", "/api/v2/torrents/add", data={
            "urls": torrent.magnet_link,
            "savepath": self.config_service.download_path,
            "tags": tag,
        })
        logger.info(f"Torrent added: {torrent.name}")

        interval = self.config_service.get_qbittorrent_config().get("poll_interval", 5)
        missing = 0
        while True:
            info = await self._info(torrent, tag)
            if info is None:
                missing += 1
                if missing > ADD_GRACE_POLLS:
                    raise TransferError(f"Torrent disappeared from qBittorrent: {torrent.name}")
            else:
                missing = 0
                torrent.info_hash = info.get("hash") or torrent.info_hash
                torrent.progress = float(info.get("progress") or 0.0)
                torrent.peers = int(info.get("num_seeds") or 0) + int(info.get("num_leechs") or 0)
                torrent.speed = int(info.get("dlspeed") or 0)
                torrent.eta = int(info.get("eta") or 0)
                torrent.content_path = info.get("content_path") or torrent.content_path
                state = info.get("state", "")
                if state in ERROR_STATES:
                    raise TransferError(f"Torrent {torrent.name} entered state {state}")
                if torrent.progress >= 1.0 or state in COMPLETE_STATES:
                    logger.info(f"Torrent complete: {torrent.name}")
                    return
            await asyncio.sleep(interval)

    async def cancel(self, torrent: "Torrent") -> None:
        """Stop the transfer and discard its data."""
        await self._delete(torrent, delete_files=True)

    async def remove(self, torrent: "Torrent") -> None:
        """Forget a finished transfer, leaving exported files alone."""
        await self._delete(torrent, delete_files=False)

    async def _delete(self, torrent: "Torrent", delete_files: bool) -> None:
        if not torrent.info_hash:
            return
        await self._request("POST", "/api/v2/torrents/delete", data={
            "hashes": torrent.info_hash,
            "deleteFiles": "true" if delete_files else "false",
        })
