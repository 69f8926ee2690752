"""
Telegram Bot Client

Client for sending notifications through the Telegram Bot API.

Features:
- HTML formatted messages
- Retry with backoff on rate limiting and gateway errors
- Typed errors for rejected messages
"""

import logging
from typing import Optional, Dict, Any

import httpx

from .exceptions import NetworkRetryableError, NotificationError, retry_on_network_error

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.telegram.org"


class TelegramClient:
    """
    Client for sending Telegram bot messages to a single chat.

    Args:
        token: Bot token issued by @BotFather
        chat_id: Target chat id
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        token: str,
        chat_id: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.chat_id = chat_id
        self.timeout = timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.token and self.chat_id)

    @retry_on_network_error(max_retries=3, base_delay=1.0, max_delay=30.0)
    async def send_message(self, text: str, parse_mode: str = "HTML") -> Dict[str, Any]:
        """
        Send a message to the configured chat.

        Returns:
            The "result" object returned by Telegram

        Raises:
            NotificationError: Telegram rejected the message or is not configured
            NetworkRetryableError: Rate limited or unreachable (after retries)
        """
        if not self.is_configured:
            raise NotificationError("Telegram bot token or chat id not configured")

        payload = {
            'chat_id': self.chat_id,
            'text': text,
            'parse_mode': parse_mode,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{API_BASE_URL}/bot{self.token}/sendMessage",
                    json=payload
                )
        except httpx.TimeoutException as e:
            logger.error("Telegram request timeout")
            raise NetworkRetryableError("Telegram request timeout", original_exception=e)
        except httpx.HTTPError as e:
            logger.error(f"Telegram connection error: {e}")
            raise NetworkRetryableError(f"Telegram connection error: {e}", original_exception=e)

        if response.status_code == 200:
            logger.info("Telegram notification sent successfully")
            return response.json().get('result', {})

        if response.status_code == 429:
            retry_after = self._retry_after(response)
            logger.warning(f"Telegram rate limited. Retry after {retry_after}s")
            raise NetworkRetryableError("Telegram rate limited", retry_after=retry_after)

        if response.status_code in (502, 503, 504):
            raise NetworkRetryableError(f"Telegram unavailable: HTTP {response.status_code}")

        error_msg = f"Telegram sendMessage failed: HTTP {response.status_code}"
        logger.error(f"{error_msg}: {response.text[:200]}")
        raise NotificationError(error_msg, status_code=response.status_code)

    @staticmethod
    def _retry_after(response: httpx.Response) -> Optional[int]:
        try:
            return int(response.json().get('parameters', {}).get('retry_after', 1))
        except (ValueError, TypeError, AttributeError):
            return None
