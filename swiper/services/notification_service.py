"""Notification service: delivers session output to its transport."""
from __future__ import annotations

import html
import logging
from collections import deque
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from swiper.services.config_service import ConfigService
    from swiper.services.http_client import HttpClientService

logger = logging.getLogger(__name__)

TELEGRAM_MAX_MESSAGE = 4000
OUTBOX_LIMIT = 200


class NotificationService:
    """Routes outbound text by session type.

    * ``cli`` prints to stdout
    * ``telegram`` posts through the Bot API (chat id = session id)
    * ``api`` buffers per session until drained over HTTP
    """

    def __init__(self, config_service: "ConfigService", http_client: "HttpClientService"):
        self.config_service = config_service
        self.http_client = http_client
        self._outboxes: dict[str, deque[str]] = {}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_bot_token(self) -> str | None:
        cfg = self.config_service.get_telegram_config()
        if not cfg.get("enabled"):
            return None
        return cfg.get("bot_token") or None

    @staticmethod
    def _chunks(text: str) -> list[str]:
        if len(text) <= TELEGRAM_MAX_MESSAGE:
            return [text]
        chunks, current = [], ""
        for line in text.split("\n"):
            if current and len(current) + len(line) + 1 > TELEGRAM_MAX_MESSAGE:
                chunks.append(current)
                current = ""
            current = f"{current}\n{line}" if current else line
        if current:
            chunks.append(current)
        return chunks

    async def _send_telegram(self, chat_id: str, text: str) -> None:
        bot_token = self._get_bot_token()
        if not bot_token:
            logger.warning(f"Telegram disabled, dropping message for {chat_id}")
            return
        client = await self.http_client.get_client()
        url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        for chunk in self._chunks(text):
            try:
                resp = await client.post(url, json={
                    "chat_id": chat_id,
                    "text": f"<pre>{html.escape(chunk)}</pre>" if "\n |" in chunk else html.escape(chunk),
                    "parse_mode": "HTML",
                })
                if resp.status_code != 200:
                    logger.error(f"Telegram sendMessage returned {resp.status_code}: {resp.text[:200]}")
            except httpx.HTTPError as e:
                logger.error(f"Telegram send failed for {chat_id}: {e}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send(self, session_type: str, session_id: str, text: str) -> None:
        if session_type == "cli":
            print(text, flush=True)
        elif session_type == "telegram":
            await self._send_telegram(session_id, text)
        else:
            box = self._outboxes.setdefault(session_id, deque(maxlen=OUTBOX_LIMIT))
            box.append(text)

    def drain_outbox(self, session_id: str) -> list[str]:
        box = self._outboxes.get(session_id)
        if not box:
            return []
        messages = list(box)
        box.clear()
        return messages
