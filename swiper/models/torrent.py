"""Pydantic model for torrent candidates and their transfer progress."""
from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def format_bytes(b: float) -> str:
    if not b:
        return "0 B"
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(b) < 1024:
            return f"{b:.1f} {unit}"
        b /= 1024
    return f"{b:.1f} PB"


class Torrent(BaseModel):
    """A torrent candidate returned by the search service.

    Search fields are persisted with a queued video; the progress fields are
    filled by the transfer client while downloading and never written out.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str
    size: int = 0  # bytes
    seeders: int = 0
    leechers: int = 0
    upload_time: str = Field(default="", alias="uploadTime")
    magnet_link: str = Field(default="", alias="magnetLink")

    info_hash: Optional[str] = Field(default=None, exclude=True)
    progress: float = Field(default=0.0, exclude=True)
    peers: int = Field(default=0, exclude=True)
    speed: int = Field(default=0, exclude=True)
    eta: int = Field(default=0, exclude=True)
    content_path: Optional[str] = Field(default=None, exclude=True)

    @property
    def size_mb(self) -> float:
        return self.size / 1024 / 1024

    def get_tier(self, video_type: str, options: dict) -> int:
        """Score used to auto-pick the best candidate; 0 means ineligible.

        The quality rank comes from the first preferred keyword found in the
        name (earlier keywords rank higher); a seeder bonus is added on top.
        """
        kind = "movie" if video_type == "movie" else "tv"
        name = self.name.lower()

        for pattern in options.get("reject_patterns", []):
            try:
                if re.search(pattern, name, re.IGNORECASE):
                    return 0
            except re.error:
                continue

        size_range = options.get("size", {}).get(kind, {})
        if self.size_mb < size_range.get("min", 0) or self.size_mb > size_range.get("max", float("inf")):
            return 0

        min_seeders = options.get("min_seeders", 0)
        if self.seeders < min_seeders:
            return 0

        prefs = options.get("quality", {}).get(kind, [])
        quality = 0
        for i, keyword in enumerate(prefs):
            if keyword.lower() in name:
                quality = len(prefs) - i
                break
        if not quality:
            return 0

        bonus = 1 if self.seeders >= max(min_seeders, 1) * 5 else 0
        return quality * 2 + bonus

    def get_download_info(self) -> str:
        percent = round(self.progress * 100, 1)
        eta = f"{self.eta // 60}m" if self.eta else "?"
        return (
            f"{self.name} | {percent}% | {self.peers} peers | "
            f"{format_bytes(self.speed)}/s | ETA {eta}"
        )

    def __str__(self) -> str:
        return (
            f"{self.name}\n"
            f" | Size: {format_bytes(self.size)}\n"
            f" | SE: {self.seeders}\n"
            f" | LE: {self.leechers}\n"
            f" | Uploaded: {self.upload_time}\n"
        )
