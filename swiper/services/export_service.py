"""Export service: moves finished downloads into the media library."""
from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
import unicodedata
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from swiper.services.config_service import ConfigService

logger = logging.getLogger(__name__)


def sanitize_filename(name: str) -> str:
    name = unicodedata.normalize("NFKD", name)
    name = re.sub(r'[<>:"/\\|?*]', "", name)
    name = re.sub(r"\s+", " ", name).strip()
    name = name.strip(".")
    return name or "untitled"


class ExportService:
    """Library layout: ``movies/<Title (Year)>/`` and ``tv/<Title>/Season N/``."""

    def __init__(self, config_service: "ConfigService"):
        self.config_service = config_service

    def build_library_dir(self, video) -> str:
        base_path = self.config_service.get_library_path()
        if video.get_type() == "movie":
            return os.path.join(base_path, "movies", sanitize_filename(video.get_desc()))
        return os.path.join(
            base_path, "tv", sanitize_filename(video.get_safe_title()), f"Season {video.season_num}"
        )

    def _move_into(self, source: str, dest_dir: str) -> None:
        os.makedirs(dest_dir, exist_ok=True)
        if os.path.isdir(source):
            for entry in sorted(os.listdir(source)):
                shutil.move(os.path.join(source, entry), os.path.join(dest_dir, entry))
            shutil.rmtree(source, ignore_errors=True)
        else:
            shutil.move(source, os.path.join(dest_dir, os.path.basename(source)))

    async def export_video(self, video) -> bool:
        """Move the downloaded content of *video* into the library."""
        torrent = video.torrent
        source = torrent.content_path if torrent else None
        if not source or not os.path.exists(source):
            logger.error(f"Nothing to export for {video.get_desc()}: {source!r}")
            return False
        dest_dir = self.build_library_dir(video)
        try:
            await asyncio.to_thread(self._move_into, source, dest_dir)
        except OSError as e:
            logger.error(f"Export of {video.get_desc()} to {dest_dir} failed: {e}")
            return False
        logger.info(f"Exported {video.get_desc()} to {dest_dir}")
        return True
