"""Metadata service: resolves a parsed request into a Movie, Episode or Collection.

Movies and shows are first looked up by title on OMDB; shows are then
expanded through TVDB (v4) to get the episode list and air dates.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Optional

import httpx

from swiper.errors import NotFound
from swiper.models.content import Collection, Episode, Movie

if TYPE_CHECKING:
    from swiper.services.config_service import ConfigService
    from swiper.services.http_client import HttpClientService

logger = logging.getLogger(__name__)

AIRS_TIME_FORMATS = ("%H:%M", "%I:%M %p", "%I:%M%p", "%H:%M:%S")


def episode_release_date(aired: Optional[str], airs_time: Optional[str]) -> Optional[datetime]:
    """Combine a TVDB air date (``YYYY-MM-DD``) with the series air time."""
    if not aired:
        return None
    try:
        day = datetime.strptime(aired[:10], "%Y-%m-%d")
    except ValueError:
        return None
    for fmt in AIRS_TIME_FORMATS:
        try:
            t = datetime.strptime((airs_time or "").strip().upper(), fmt)
            return day.replace(hour=t.hour, minute=t.minute)
        except ValueError:
            continue
    return day


class MetadataService:
    """OMDB + TVDB lookups used by sessions to identify requested content."""

    def __init__(self, config_service: "ConfigService", http_client: "HttpClientService"):
        self.config_service = config_service
        self.http_client = http_client
        self._tvdb_token: Optional[str] = None

    # ------------------------------------------------------------------
    # OMDB
    # ------------------------------------------------------------------

    async def _omdb_lookup(self, title: str, year: Optional[str]) -> dict:
        cfg = self.config_service.get_omdb_config()
        params = {"apikey": cfg.get("api_key", ""), "t": title}
        if year:
            params["y"] = year
        client = await self.http_client.get_client()
        try:
            resp = await client.get(cfg.get("url", "http://www.omdbapi.com/"), params=params)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"OMDB error for '{title}': {e}")
            raise NotFound("I can't access the Open Movie Database, try again in a minute") from e

    # ------------------------------------------------------------------
    # TVDB
    # ------------------------------------------------------------------

    async def _tvdb_login(self) -> str:
        cfg = self.config_service.get_tvdb_config()
        client = await self.http_client.get_client()
        resp = await client.post(f"{cfg.get('url', '').rstrip('/')}/login", json={"apikey": cfg.get("api_key", "")})
        resp.raise_for_status()
        self._tvdb_token = resp.json()["data"]["token"]
        logger.info("TVDB token refreshed")
        return self._tvdb_token

    async def _tvdb_get(self, path: str, params: dict | None = None) -> dict:
        """GET a TVDB endpoint, logging in again once if the token was rejected."""
        cfg = self.config_service.get_tvdb_config()
        url = f"{cfg.get('url', '').rstrip('/')}{path}"
        client = await self.http_client.get_client()
        token = self._tvdb_token or await self._tvdb_login()
        resp = await client.get(url, params=params, headers={"Authorization": f"Bearer {token}"})
        if resp.status_code == 401:
            token = await self._tvdb_login()
            resp = await client.get(url, params=params, headers={"Authorization": f"Bearer {token}"})
        resp.raise_for_status()
        return resp.json()

    async def _tvdb_episodes(self, imdb_id: str) -> tuple[str, list[dict]]:
        """Return the series air time and its aired-order episodes (specials skipped)."""
        found = await self._tvdb_get(f"/search/remoteid/{imdb_id}")
        series_id = next(
            (r["series"]["id"] for r in found.get("data") or [] if r.get("series")),
            None,
        )
        if series_id is None:
            raise LookupError(f"No TVDB series for {imdb_id}")

        extended = await self._tvdb_get(f"/series/{series_id}/extended", {"short": "true"})
        airs_time = (extended.get("data") or {}).get("airsTime") or ""

        episodes: list[dict] = []
        page = 0
        while True:
            body = await self._tvdb_get(f"/series/{series_id}/episodes/default", {"page": page})
            episodes.extend(
                ep for ep in (body.get("data") or {}).get("episodes") or []
                if ep.get("seasonNumber") and ep.get("number")
            )
            if not (body.get("links") or {}).get("next"):
                break
            page += 1
        return airs_time, episodes

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def identify_content(self, owner_id: str, request: dict):
        """Resolve ``{title, year?, season?, episode?}`` into a content item.

        Raises NotFound when the title is unknown or a database is unreachable.
        """
        season = int(request["season"]) if request.get("season") else None
        episode = int(request["episode"]) if request.get("episode") else None

        entry = await self._omdb_lookup(request["title"], request.get("year"))
        if not entry or entry.get("Response") == "False":
            raise NotFound("I don't know what that is, try being very explicit with spelling.")

        title = entry.get("Title") or request["title"]
        if entry.get("Type") == "movie":
            year = (entry.get("Year") or "")[:4] or None
            return Movie(title=title, year=year, swiper_id=owner_id)

        try:
            airs_time, tvdb_eps = await self._tvdb_episodes(entry.get("imdbID", ""))
        except (httpx.HTTPError, LookupError, KeyError, ValueError) as e:
            logger.error(f"TVDB error for '{title}': {e}")
            raise NotFound("I can't find that show.") from e

        episodes = [
            Episode(
                title=title,
                season_num=ep["seasonNumber"],
                episode_num=ep["number"],
                release_date=episode_release_date(ep.get("aired"), airs_time),
                swiper_id=owner_id,
            )
            for ep in tvdb_eps
            if not season or ep["seasonNumber"] == season
        ]

        if season and episode:
            match = next((ep for ep in episodes if ep.episode_num == episode), None)
            if match is None:
                raise NotFound(f"I can't find {title} season {season} episode {episode}.")
            return match

        return Collection(
            title=title,
            episodes=episodes,
            initial_type="season" if season else "series",
            initial_season=season,
            swiper_id=owner_id,
        )
