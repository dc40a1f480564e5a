"""Telegram delivery of scan results.

``send_message`` fans one text out to every configured chat and only fails
when no chat received it. Batches of listings are packed into as few
messages as fit under Telegram's length limit, keeping page order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

import httpx

from core.errors import ConfigError, NotifierDispatchError

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000  # Telegram caps at 4096, leave some buffer
SEPARATOR = "\n\n----------\n\n"


def split_messages(
    items: Sequence[str], limit: int = MAX_MESSAGE_LENGTH, separator: str = SEPARATOR
) -> List[str]:
    """Join *items* with *separator* into chunks no longer than *limit*.

    An item that is longer than *limit* on its own becomes its own chunk.
    """
    chunks: List[str] = []
    current = ""
    for item in items:
        candidate = current + separator + item if current else item
        if current and len(candidate) > limit:
            chunks.append(current)
            current = item
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


class TelegramNotifier:
    def __init__(self, api_token: Optional[str], chat_ids: List[str], client: httpx.AsyncClient):
        self.api_token = api_token
        self.chat_ids = chat_ids
        self.client = client

    async def send_message(self, text: str) -> Dict[str, bool]:
        if not self.api_token:
            raise ConfigError("Telegram API token not configured. Set TELEGRAM_API_TOKEN in .env")
        if not self.chat_ids:
            raise ConfigError("No Telegram chat IDs configured. Set TELEGRAM_CHAT_IDS in .env")

        outcomes = await asyncio.gather(
            *(self._send_to(chat_id, text) for chat_id in self.chat_ids),
            return_exceptions=True,
        )

        results: Dict[str, bool] = {}
        for chat_id, outcome in zip(self.chat_ids, outcomes):
            if isinstance(outcome, Exception):
                logger.error("[Notifier] Failed to send to %s: %s", chat_id, outcome)
                results[chat_id] = False
            else:
                results[chat_id] = True

        if not any(results.values()):
            raise NotifierDispatchError("Failed to send message to any recipient", results)
        return results

    async def _send_to(self, chat_id: str, text: str) -> None:
        response = await self.client.post(
            f"/bot{self.api_token}/sendMessage",
            json={"chat_id": chat_id, "text": text, "disable_web_page_preview": True},
        )
        response.raise_for_status()

    async def notify_new_items(self, topic: str, items: Sequence[str]) -> None:
        plural = "" if len(items) == 1 else "s"
        await self.send_message(f"{len(items)} new listing{plural} for {topic}:")
        for chunk in split_messages(items):
            await self.send_message(chunk)

    async def notify_quiet(self, topic: str, hours: float) -> None:
        await self.send_message(f"No new listings for {topic} in the last {hours:g} hours")

    async def notify_scan_failed(self, topic: str, error: str) -> None:
        await self.send_message(f"Scan of {topic} failed...\nError: {error}")
