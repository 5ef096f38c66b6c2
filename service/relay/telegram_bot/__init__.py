"""
Telegram side of the relay.

ARCHITECTURE: one pipeline, two transports.
- Webhook (push): FastAPI endpoint validates the update, answers 200 and
  hands the message to the pipeline on a background task
- Long polling (pull): a single sequential loop over getUpdates with a cursor
  that only moves forward
- Pipeline: completion backend -> chunking -> ordered delivery, with a single
  apology message on any failure
"""

from .bot import Pipeline, PipelineState, dispatch_in_background, get_pipeline, run_polling
from .dedup import UpdateDeduplicator
from .delivery import DeliveryFailure, chunk_text, deliver
from .schemas import InboundEvent
from .telegram_api import TelegramAPI, TelegramAPIError, get_telegram_api
from .transport import PollingTransport, WebhookTransport, parse_update

__all__ = [
    "Pipeline",
    "PipelineState",
    "dispatch_in_background",
    "get_pipeline",
    "run_polling",
    "UpdateDeduplicator",
    "DeliveryFailure",
    "chunk_text",
    "deliver",
    "InboundEvent",
    "TelegramAPI",
    "TelegramAPIError",
    "get_telegram_api",
    "PollingTransport",
    "WebhookTransport",
    "parse_update",
]
