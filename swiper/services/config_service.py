"""Configuration service: loads, saves, and provides access to AppConfig."""
from __future__ import annotations

import json
import logging
import os

from pydantic import ValidationError

from swiper.models.config import AppConfig

logger = logging.getLogger(__name__)


def _merge_defaults(config: dict, default: dict) -> dict:
    """Recursively fill keys missing from *config* with *default* values."""
    for key, value in default.items():
        if key not in config:
            config[key] = value
        elif isinstance(value, dict) and isinstance(config[key], dict):
            _merge_defaults(config[key], value)
    return config


class ConfigService:
    """Manages application configuration with file persistence.

    The config is kept in-memory after first load and re-read on explicit
    ``load()`` or ``reload()`` calls.  Every service that needs a setting
    should depend on this service rather than reading the JSON directly.
    """

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self.config_file = os.path.join(data_dir, "config.json")
        self._config: dict = self._default_config()

    @staticmethod
    def _default_config() -> dict:
        return AppConfig().model_dump()

    # ------------------------------------------------------------------
    # Load / Save
    # ------------------------------------------------------------------

    def load(self) -> dict:
        """Load configuration from disk, filling in defaults."""
        default = self._default_config()

        if os.path.exists(self.config_file):
            try:
                with open(self.config_file) as f:
                    config = json.load(f)
                config = _merge_defaults(config, default)
                self._config = AppConfig.model_validate(config).model_dump()
                return self._config
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.error(f"Error loading config: {e}")

        self._config = default
        return self._config

    def reload(self) -> dict:
        """Alias for ``load()``."""
        return self.load()

    def save(self, config: dict | None = None) -> None:
        """Persist the config to disk."""
        if config is not None:
            self._config = config
        os.makedirs(os.path.dirname(self.config_file) or ".", exist_ok=True)
        with open(self.config_file, "w") as f:
            json.dump(self._config, f, indent=2)

    def update_options(self, changes: dict) -> dict:
        """Validate and apply a partial options update, then persist it."""
        options = _merge_defaults(dict(changes), self.options)
        self._config["options"] = AppConfig.model_validate({"options": options}).options.model_dump()
        self.save()
        return self.options

    @property
    def config(self) -> dict:
        return self._config

    # ------------------------------------------------------------------
    # Convenience accessors
    # ------------------------------------------------------------------

    @property
    def options(self) -> dict:
        return self._config.get("options", {})

    def get_max_downloads(self) -> int:
        return max(self.options.get("max_downloads", 3), 1)

    max_downloads = property(get_max_downloads)

    def get_monitor_hour(self) -> int:
        return self.options.get("monitor_hour", 3) % 24

    monitor_hour = property(get_monitor_hour)

    def get_backoff_schedule(self) -> list[int]:
        return list(self.options.get("backoff_schedule", []))

    backoff_schedule = property(get_backoff_schedule)

    def get_upcoming_cooldown(self) -> int:
        return self.options.get("upcoming_cooldown", 60)

    def get_upcoming_lead_hours(self) -> int:
        return self.options.get("upcoming_lead_hours", 24)

    def get_lock_timeout(self) -> float:
        return self.options.get("lock_timeout", 5.0)

    def get_search_retries(self) -> int:
        return self.options.get("search_retries", 3)

    def get_display_torrents(self) -> int:
        return max(self.options.get("display_torrents", 4), 1)

    def get_download_path(self) -> str:
        return self.options.get("download_path", "/data/downloads")

    download_path = property(get_download_path)

    def get_library_path(self) -> str:
        return self.options.get("library_path", "/data/media")

    library_path = property(get_library_path)

    def get_omdb_config(self) -> dict:
        return self._config.get("omdb", {})

    def get_tvdb_config(self) -> dict:
        return self._config.get("tvdb", {})

    def get_prowlarr_config(self) -> dict:
        return self._config.get("prowlarr", {})

    def get_qbittorrent_config(self) -> dict:
        return self._config.get("qbittorrent", {})

    def get_telegram_config(self) -> dict:
        return self._config.get("telegram", {"enabled": False, "bot_token": ""})
