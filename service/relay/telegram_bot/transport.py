"""
Inbound transports: how Telegram updates reach the relay.

Two interchangeable variants expose the same ``receive`` capability:

- WebhookTransport (push): Telegram POSTs one update per request to our
  endpoint; ``receive(payload)`` validates it into zero or one event.
- PollingTransport (pull): we call getUpdates with the current cursor and a
  long-poll timeout; ``receive()`` returns whatever arrived, oldest first.

Exactly one of them is active per process (TRANSPORT_MODE).
"""

import asyncio
from typing import Any, Optional

from pydantic import ValidationError

from .dedup import UpdateDeduplicator
from .logging_config import bot_logger as logger
from .schemas import InboundEvent, TelegramUpdate
from .telegram_api import TelegramAPI, TelegramAPIError

ALLOWED_UPDATES = ["message"]


def parse_update(payload: Any, require_text: bool = True) -> Optional[InboundEvent]:
    """
    Turn a raw Update dict into an InboundEvent.

    Returns None for anything that is not a message with a chat id
    (and, when ``require_text`` is set, a non-empty text).
    """
    if not isinstance(payload, dict) or not payload:
        return None

    try:
        update = TelegramUpdate.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Malformed update ignored: {e.error_count()} validation error(s)")
        return None

    message = update.message
    if message is None:
        return None

    if require_text and not message.text:
        return None

    return InboundEvent(
        chat_id=message.chat.id,
        text=message.text,
        sequence_id=update.update_id
    )


class WebhookTransport:
    """Push mode: one payload per HTTP call, validated into 0..1 events."""

    def receive(self, payload: Any) -> list[InboundEvent]:
        event = parse_update(payload, require_text=True)
        if event is None:
            logger.info("No message or text in update, acknowledging without processing")
            return []
        return [event]


class PollingTransport:
    """
    Pull mode: long-poll getUpdates starting at the deduplicator's cursor.

    The transport reads the cursor; events are acknowledged one by one by the
    polling loop after the pipeline handled them, and ``finish_batch`` then
    moves past updates that never became events.
    """

    def __init__(
        self,
        telegram: TelegramAPI,
        deduplicator: UpdateDeduplicator,
        poll_timeout: int = 30,
        backoff_seconds: float = 5.0,
    ):
        self.telegram = telegram
        self.deduplicator = deduplicator
        self.poll_timeout = poll_timeout
        self.backoff_seconds = backoff_seconds
        self._batch_last_id: Optional[int] = None

    async def receive(self) -> list[InboundEvent]:
        """
        Fetch one batch of events.

        On failure logs, waits ``backoff_seconds`` and returns an empty batch;
        the cursor is left untouched so the same updates are requested again.
        """
        try:
            updates = await self.telegram.get_updates(
                offset=self.deduplicator.cursor,
                timeout=self.poll_timeout,
                allowed_updates=ALLOWED_UPDATES
            )
        except TelegramAPIError as e:
            logger.error(f"getUpdates failed, retrying in {self.backoff_seconds}s: {e}")
            await asyncio.sleep(self.backoff_seconds)
            return []

        events = []
        for raw in updates:
            update_id = raw.get("update_id") if isinstance(raw, dict) else None
            if isinstance(update_id, int) and (self._batch_last_id is None or update_id > self._batch_last_id):
                self._batch_last_id = update_id

            event = parse_update(raw, require_text=False)
            if event is None or event.sequence_id is None:
                continue
            events.append(event)

        if updates:
            logger.info(f"Received {len(updates)} update(s), {len(events)} message(s)")
        return events

    def finish_batch(self) -> None:
        """
        Move the cursor past the whole last batch.

        Called by the polling loop after every event of the batch was handled,
        so updates that never became events (edited messages, service
        messages) are not requested again.
        """
        if self._batch_last_id is not None:
            self.deduplicator.skip(self._batch_last_id)
            self._batch_last_id = None

    async def discard_backlog(self) -> int:
        """
        Skip everything already queued on Telegram's side.

        Returns:
            The new cursor position
        """
        updates = await self.telegram.get_updates(offset=-1, timeout=0, allowed_updates=ALLOWED_UPDATES)
        for raw in updates:
            update_id = raw.get("update_id") if isinstance(raw, dict) else None
            if isinstance(update_id, int):
                self.deduplicator.skip(update_id)
        logger.info(f"Pending updates discarded, cursor at {self.deduplicator.cursor}")
        return self.deduplicator.cursor
