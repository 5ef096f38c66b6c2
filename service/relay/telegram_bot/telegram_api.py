"""
Telegram Bot API client.

Thin async wrapper over the handful of Bot API methods the relay needs:
sendMessage for answers, getUpdates for long polling and
deleteWebhook / setWebhook for registering the push endpoint.
"""

import httpx
from typing import Any, Optional

from relay.config import get_settings

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramAPIError(Exception):
    """
    A Bot API call did not succeed.

    Covers network errors, non-2xx statuses, unparseable bodies and
    ``{"ok": false}`` envelopes. ``status_code`` is None for network errors.
    """

    def __init__(self, method: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"Telegram {method} failed: {message}")
        self.method = method
        self.status_code = status_code


class TelegramAPI:
    """
    Client for the Telegram Bot API.

    One instance (and one connection pool) per process.
    """

    def __init__(
        self,
        token: str,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = TELEGRAM_API_BASE,
    ):
        self.base_url = f"{base_url}/bot{token}"
        self.client = client or httpx.AsyncClient(timeout=60.0)

    async def call(self, method: str, payload: Optional[dict] = None, timeout: Optional[float] = None) -> Any:
        """
        Call a Bot API method and return its ``result`` field.

        Raises:
            TelegramAPIError: on any transport or API level failure
        """
        kwargs = {"json": payload or {}}
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            response = await self.client.post(f"{self.base_url}/{method}", **kwargs)
        except httpx.HTTPError as e:
            raise TelegramAPIError(method, f"{type(e).__name__}: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_error:
            description = data.get("description") if isinstance(data, dict) else response.text[:200]
            raise TelegramAPIError(method, f"{response.status_code} {description}", response.status_code)

        if not isinstance(data, dict):
            raise TelegramAPIError(method, "response is not a JSON object", response.status_code)

        if not data.get("ok"):
            raise TelegramAPIError(method, data.get("description", "ok=false"), response.status_code)

        return data.get("result")

    async def send_message(self, chat_id: int, text: str, parse_mode: Optional[str] = None) -> dict:
        """
        Send message to a Telegram chat.

        Args:
            chat_id: Telegram chat ID
            text: Message text (at most 4096 characters)
            parse_mode: Optional parse mode (Markdown, HTML)

        Returns:
            The sent Message object
        """
        payload = {
            "chat_id": chat_id,
            "text": text
        }

        if parse_mode:
            payload["parse_mode"] = parse_mode

        return await self.call("sendMessage", payload)

    async def get_updates(self, offset: int, timeout: int = 30, allowed_updates: Optional[list[str]] = None) -> list[dict]:
        """
        Long-poll for pending updates.

        Args:
            offset: Identifier of the first update to return
            timeout: Seconds Telegram may hold the request open
            allowed_updates: Update types to receive (None keeps the bot's setting)

        Returns:
            List of raw Update dicts, oldest first
        """
        payload = {"offset": offset, "timeout": timeout}
        if allowed_updates is not None:
            payload["allowed_updates"] = allowed_updates

        # The HTTP timeout must outlast the server-side long poll
        result = await self.call("getUpdates", payload, timeout=timeout + 10)
        if not isinstance(result, list):
            raise TelegramAPIError("getUpdates", "result is not a list")
        return result

    async def delete_webhook(self, drop_pending_updates: bool = False) -> Any:
        """Remove the registered webhook, if any."""
        return await self.call("deleteWebhook", {"drop_pending_updates": drop_pending_updates})

    async def set_webhook(
        self,
        url: str,
        allowed_updates: Optional[list[str]] = None,
        secret_token: Optional[str] = None
    ) -> Any:
        """Register ``url`` as the push endpoint for this bot."""
        payload = {"url": url}
        if allowed_updates is not None:
            payload["allowed_updates"] = allowed_updates
        if secret_token:
            payload["secret_token"] = secret_token
        return await self.call("setWebhook", payload)

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()


# Global instance
_telegram_api: Optional[TelegramAPI] = None


def get_telegram_api() -> TelegramAPI:
    """Get or create Telegram API client singleton."""
    global _telegram_api
    if _telegram_api is None:
        settings = get_settings()
        _telegram_api = TelegramAPI(settings.telegram_bot_token)
    return _telegram_api


async def close_telegram_api() -> None:
    """Close the singleton client (call on shutdown)."""
    global _telegram_api
    if _telegram_api is not None:
        await _telegram_api.close()
        _telegram_api = None
