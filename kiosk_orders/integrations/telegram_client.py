"""Telegram Bot API client used for receipts and push notifications."""
from typing import Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)


class TelegramError(Exception):
    """Raised when the Bot API rejects or fails a request."""


class TelegramClient:
    """
    Minimal Bot API wrapper (sendMessage only).

    Without a bot token the client is unconfigured and callers are expected
    to log instead of sending.
    """

    def __init__(
        self,
        bot_token: Optional[str],
        api_url: str = "https://api.telegram.org",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.bot_token = bot_token
        self.api_url = api_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client

    @property
    def configured(self) -> bool:
        return bool(self.bot_token)

    async def send_message(self, chat_id: str, text: str) -> None:
        """
        Send a text message to a chat.

        Raises:
            TelegramError: If the bot is unconfigured or the API call fails
        """
        if not self.bot_token:
            raise TelegramError("TELEGRAM_BOT_TOKEN is not set")

        url = f"{self.api_url}/bot{self.bot_token}/sendMessage"
        payload = {"chat_id": chat_id, "text": text}

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise TelegramError(f"Telegram request failed: {e}") from e

        if response.status_code != 200:
            raise TelegramError(f"Telegram API returned status {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise TelegramError("Telegram API returned a non-JSON body") from e

        if not isinstance(body, dict) or not body.get("ok", False):
            description = body.get("description") if isinstance(body, dict) else None
            raise TelegramError(description or "Telegram API error")
