"""
Outbound delivery: split long answers and send them in order.

Telegram rejects sendMessage texts longer than 4096 characters, so answers
are cut into contiguous slices. Cuts may fall mid-word; no character is ever
dropped or duplicated.
"""

from typing import Optional, Union

from .logging_config import bot_logger as logger
from .telegram_api import TelegramAPI, TelegramAPIError

TELEGRAM_MAX_MESSAGE_LENGTH = 4096


class DeliveryFailure(Exception):
    """A chunk could not be sent; ``sent`` chunks before it were delivered."""

    def __init__(self, chat_id, sent: int, total: int, cause: Exception):
        super().__init__(f"Delivery to chat {chat_id} failed after {sent}/{total} chunk(s): {cause}")
        self.chat_id = chat_id
        self.sent = sent
        self.total = total
        self.cause = cause


def chunk_text(text: str, max_len: int = TELEGRAM_MAX_MESSAGE_LENGTH) -> list[str]:
    """
    Split ``text`` into ordered slices of at most ``max_len`` characters.

    ``"".join(chunk_text(t, n)) == t`` always holds.
    """
    if max_len < 1:
        raise ValueError(f"max_len must be positive, got {max_len}")

    if len(text) <= max_len:
        return [text]

    return [text[i:i + max_len] for i in range(0, len(text), max_len)]


async def deliver(
    telegram: TelegramAPI,
    chat_id: Union[int, str],
    chunks: list[str],
    parse_mode: Optional[str] = None
) -> None:
    """
    Send ``chunks`` to ``chat_id`` one after another.

    Each send is awaited before the next starts. Stops at the first failure;
    already delivered chunks stay delivered.

    Raises:
        DeliveryFailure: if any chunk could not be sent
    """
    total = len(chunks)
    for index, chunk in enumerate(chunks):
        try:
            await telegram.send_message(chat_id, chunk, parse_mode=parse_mode)
        except TelegramAPIError as e:
            raise DeliveryFailure(chat_id, index, total, e) from e

    logger.info(f"Delivered {total} chunk(s) to chat_id={chat_id}")
