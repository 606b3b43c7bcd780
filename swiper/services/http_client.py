"""HTTP client service: the pooled httpx.AsyncClient behind OMDB, TVDB, Prowlarr, qBittorrent and Telegram."""
from __future__ import annotations

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "Swiper/0.4 (+httpx)",
    "Accept": "application/json, */*",
}


class HttpClientService:
    """Owns one AsyncClient for every external API adapter.

    *transport* replaces the network layer (an ``httpx.MockTransport`` in
    tests); *timeout* is the read timeout in seconds.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 60.0):
        self._transport = transport
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers=HEADERS,
                transport=self._transport,
                timeout=httpx.Timeout(self._timeout, connect=15.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            logger.info("HTTP client closed")
        self._client = None
