"""Torrent search service: queries the Prowlarr indexer for a video."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import httpx
from rapidfuzz import fuzz

from swiper.models.torrent import Torrent
from swiper.services.parse_service import normalize_title

if TYPE_CHECKING:
    from swiper.services.config_service import ConfigService
    from swiper.services.http_client import HttpClientService

logger = logging.getLogger(__name__)

MAX_RESULTS = 20
RETRY_DELAY = 0.1  # seconds
TITLE_MATCH_THRESHOLD = 80
CATEGORIES = {"movie": [2000], "episode": [5000]}


def title_matches(video, release_name: str) -> bool:
    """True when a release name plausibly belongs to *video*'s title."""
    target = normalize_title(video.title)
    name = normalize_title(release_name)
    if not target:
        return True
    if target in name:
        return True
    return fuzz.partial_ratio(target, name) >= TITLE_MATCH_THRESHOLD


class SearchService:
    """Turns a Movie or Episode into a list of torrent candidates."""

    def __init__(self, config_service: "ConfigService", http_client: "HttpClientService"):
        self.config_service = config_service
        self.http_client = http_client

    async def _query(self, video) -> list[dict]:
        cfg = self.config_service.get_prowlarr_config()
        client = await self.http_client.get_client()
        try:
            resp = await client.get(
                f"{cfg.get('url', '').rstrip('/')}/api/v1/search",
                params={
                    "query": video.get_search_term(),
                    "categories": CATEGORIES.get(video.get_type(), []),
                    "type": "search",
                    "limit": 100,
                },
                headers={"X-Api-Key": cfg.get("api_key", "")},
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Prowlarr search failed for '{video.get_search_term()}': {e}")
            return []
        return data if isinstance(data, list) else []

    async def search(self, video, retries: int | None = None) -> list[Torrent]:
        """Search for *video*, retrying up to *retries* times when nothing comes back."""
        if retries is None:
            retries = self.config_service.get_search_retries()

        for attempt in range(retries + 1):
            results = await self._query(video)
            torrents = []
            for item in results:
                magnet = item.get("magnetUrl") or item.get("downloadUrl") or ""
                name = item.get("title") or ""
                if not name or not magnet or not title_matches(video, name):
                    continue
                torrents.append(Torrent(
                    name=name,
                    size=item.get("size") or 0,
                    seeders=item.get("seeders") or 0,
                    leechers=item.get("leechers") or 0,
                    upload_time=(item.get("publishDate") or "")[:10],
                    magnet_link=magnet,
                    info_hash=(item.get("infoHash") or "").lower() or None,
                ))
            if torrents:
                torrents.sort(key=lambda t: t.seeders, reverse=True)
                logger.info(f"Found {len(torrents)} torrents for {video.get_desc()}")
                return torrents[:MAX_RESULTS]
            if attempt < retries:
                await asyncio.sleep(RETRY_DELAY)

        logger.info(f"No torrents for {video.get_desc()}")
        return []
