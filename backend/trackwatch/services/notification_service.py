"""
Notification Service

Renders torrent events into messages and delivers them to the configured
channel (Telegram).

Events:
- added: a torrent was pushed to the download client
- updated: a torrent was replaced after its hash changed on the tracker
"""

import html
import logging
from typing import Optional

from trackwatch.models.tracked_item import TrackedItem
from .telegram_client import TelegramClient

logger = logging.getLogger(__name__)

EVENT_ADDED = "added"
EVENT_UPDATED = "updated"

HEADERS = {
    EVENT_ADDED: "Добавлен новый торрент",
    EVENT_UPDATED: "Обновлен торрент",
}


def render_message(kind: str, item: TrackedItem) -> str:
    """
    Render the HTML message for an event.

    Raises:
        ValueError: Unknown event kind
    """
    if kind not in HEADERS:
        raise ValueError(f"unknown notification kind: {kind}")
    return (
        f"<b>{HEADERS[kind]}</b>\n"
        f"<b>Название:</b> {html.escape(item.title)}\n"
        f"<b>Хеш:</b> {item.hash}\n"
        f"<b>Ссылка:</b> {html.escape(item.url)}"
    )


class NotificationService:
    """
    Service for sending torrent notifications.

    Without a configured Telegram client every notification is a no-op.
    Delivery errors propagate; callers decide whether they matter.
    """

    def __init__(self, telegram_client: Optional[TelegramClient] = None):
        self._telegram = telegram_client

    @classmethod
    def from_config(cls, config) -> 'NotificationService':
        if not (config.TELEGRAM_TOKEN and config.TELEGRAM_CHAT_ID):
            logger.info("Telegram not configured, notifications disabled")
            return cls()
        return cls(TelegramClient(
            token=config.TELEGRAM_TOKEN,
            chat_id=config.TELEGRAM_CHAT_ID,
            timeout=config.TELEGRAM_TIMEOUT,
        ))

    @property
    def enabled(self) -> bool:
        return self._telegram is not None and self._telegram.is_configured

    async def notify(self, kind: str, item: TrackedItem) -> bool:
        """
        Send a notification for an event.

        Returns:
            True if a message was sent, False if notifications are disabled
        """
        text = render_message(kind, item)
        if not self.enabled:
            logger.debug(f"Notification '{kind}' for {item.url} skipped (no channel)")
            return False

        await self._telegram.send_message(text)
        logger.info(f"✓ Sent '{kind}' notification for {item.title or item.hash}")
        return True
