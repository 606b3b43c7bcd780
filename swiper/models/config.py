"""Pydantic models for application configuration."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class QualityPreferences(BaseModel):
    """Quality keywords per video kind, most preferred first."""
    model_config = ConfigDict(extra="allow")

    tv: list[str] = Field(default_factory=lambda: ["720p", "1080p", "HD"])
    movie: list[str] = Field(default_factory=lambda: ["1080p", "720p", "HD"])


class SizeRange(BaseModel):
    model_config = ConfigDict(extra="allow")

    min: int = 0  # MB
    max: int = 0


class SizeLimits(BaseModel):
    """Accepted torrent size per video kind, in MB."""
    model_config = ConfigDict(extra="allow")

    tv: SizeRange = Field(default_factory=lambda: SizeRange(min=300, max=2000))
    movie: SizeRange = Field(default_factory=lambda: SizeRange(min=600, max=4000))


class OmdbConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: str = "http://www.omdbapi.com/"
    api_key: str = ""


class TvdbConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: str = "https://api4.thetvdb.com/v4"
    api_key: str = ""


class ProwlarrConfig(BaseModel):
    """Torrent indexer (Prowlarr) settings."""
    model_config = ConfigDict(extra="allow")

    url: str = "http://localhost:9696"
    api_key: str = ""


class QbittorrentConfig(BaseModel):
    """Torrent engine (qBittorrent Web API) settings."""
    model_config = ConfigDict(extra="allow")

    url: str = "http://localhost:8080"
    username: str = "admin"
    password: str = ""
    poll_interval: int = 5  # seconds


class TelegramConfig(BaseModel):
    """Telegram bot used to talk to telegram sessions."""
    model_config = ConfigDict(extra="allow")

    enabled: bool = False
    bot_token: str = ""


class Options(BaseModel):
    """Application options."""
    model_config = ConfigDict(extra="allow")

    max_downloads: int = 3
    monitor_hour: int = 3  # hour of day for the daily monitored search
    backoff_schedule: list[int] = Field(
        default_factory=lambda: [45, 15, 15, 15, 15, 30, 30, 60, 60, 120, 240, 480]
    )  # minutes
    upcoming_cooldown: int = 60  # seconds
    upcoming_lead_hours: int = 24
    lock_timeout: float = 5.0  # seconds
    search_retries: int = 3
    display_torrents: int = 4
    min_seeders: int = 10
    quality: QualityPreferences = Field(default_factory=QualityPreferences)
    size: SizeLimits = Field(default_factory=SizeLimits)
    reject_patterns: list[str] = Field(
        default_factory=lambda: [r"\bcam\b", r"\bhdcam\b", r"\bts\b", r"telesync", r"\bhdts\b"]
    )
    download_path: str = "/data/downloads"
    library_path: str = "/data/media"


class AppConfig(BaseModel):
    """Root application configuration."""
    model_config = ConfigDict(extra="allow")

    options: Options = Field(default_factory=Options)
    omdb: OmdbConfig = Field(default_factory=OmdbConfig)
    tvdb: TvdbConfig = Field(default_factory=TvdbConfig)
    prowlarr: ProwlarrConfig = Field(default_factory=ProwlarrConfig)
    qbittorrent: QbittorrentConfig = Field(default_factory=QbittorrentConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
