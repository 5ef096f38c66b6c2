"""
Minimal pydantic models for the parts of a Telegram Update the relay reads.

Unknown fields are ignored so new Bot API additions never break parsing.
"""

from dataclasses import dataclass
from pydantic import BaseModel, ConfigDict
from typing import Optional, Union


class TelegramChat(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Union[int, str]


class TelegramMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    chat: TelegramChat
    text: Optional[str] = None


class TelegramUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    update_id: Optional[int] = None
    message: Optional[TelegramMessage] = None


@dataclass(frozen=True)
class InboundEvent:
    """
    One user message, as handed from a transport to the pipeline.

    ``sequence_id`` is the Telegram update_id; only polling mode relies on it.
    ``text`` is None for messages without text (stickers, photos).
    """

    chat_id: Union[int, str]
    text: Optional[str] = None
    sequence_id: Optional[int] = None
