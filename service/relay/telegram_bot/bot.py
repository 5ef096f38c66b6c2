"""
Main relay pipeline.

Every inbound message goes through the same state machine:

    RECEIVED -> COMPLETING -> DELIVERING -> DONE
                     |             |
                     +-> FAILED <--+

On FAILED the user gets one apology message, best effort. Nothing raised while
handling a message escapes this module: the webhook keeps answering and the
polling loop keeps polling.
"""

import asyncio
from enum import Enum
from typing import Optional

from relay.agents.prompts import APOLOGY_MESSAGE, RESOURCES_NOTICE
from relay.config import get_settings
from relay.services.completion import CompletionClient, get_completion_client
from .dedup import UpdateDeduplicator
from .delivery import DeliveryFailure, chunk_text, deliver
from .logging_config import bot_logger as logger
from .schemas import InboundEvent
from .telegram_api import TelegramAPI, TelegramAPIError, get_telegram_api
from .transport import PollingTransport


class PipelineState(str, Enum):
    RECEIVED = "received"
    COMPLETING = "completing"
    DELIVERING = "delivering"
    DONE = "done"
    FAILED = "failed"


class Pipeline:
    """
    receive -> complete -> chunk -> deliver, with apology fallback.

    Shared by both transports; holds no per-event state.
    """

    def __init__(
        self,
        telegram: TelegramAPI,
        completion: CompletionClient,
        max_message_length: int = 4096,
        parse_mode: Optional[str] = None,
        resources_notice: Optional[str] = RESOURCES_NOTICE,
        apology_message: str = APOLOGY_MESSAGE,
    ):
        self.telegram = telegram
        self.completion = completion
        self.max_message_length = max_message_length
        self.parse_mode = parse_mode or None
        self.resources_notice = resources_notice
        self.apology_message = apology_message

    async def handle_event(self, event: InboundEvent) -> PipelineState:
        """
        Process one message to a terminal state.

        Returns:
            PipelineState.DONE or PipelineState.FAILED
        """
        chat_id = event.chat_id
        state = PipelineState.RECEIVED
        logger.info(f"Processing message: chat_id={chat_id}, update_id={event.sequence_id}, "
                    f"text_len={len(event.text or '')}")

        try:
            state = PipelineState.COMPLETING
            result = await self.completion.complete(event.text)
            if not result.ok:
                logger.error(f"Completion failed for chat_id={chat_id}: {result.failure.value}")
                return await self._fail(chat_id, state)

            state = PipelineState.DELIVERING
            await deliver(self.telegram, chat_id, chunk_text(result.text, self.max_message_length),
                          parse_mode=self.parse_mode)

        except DeliveryFailure as e:
            logger.error(str(e))
            return await self._fail(chat_id, state)
        except Exception as e:
            logger.error(f"Unexpected error while {state.value} chat_id={chat_id}: {e}", exc_info=True)
            return await self._fail(chat_id, state)

        await self._send_resources_notice(chat_id)
        logger.info(f"Response sent successfully to chat_id={chat_id}")
        return PipelineState.DONE

    async def _send_resources_notice(self, chat_id) -> None:
        """Trailing disclaimer; failing to send it does not fail the event."""
        if not self.resources_notice:
            return
        try:
            await self.telegram.send_message(chat_id, self.resources_notice)
        except TelegramAPIError as e:
            logger.warning(f"Resources notice not delivered to chat_id={chat_id}: {e}")

    async def _fail(self, chat_id, from_state: PipelineState) -> PipelineState:
        """Enter FAILED: one apology attempt, no retries."""
        logger.info(f"chat_id={chat_id}: {from_state.value} -> {PipelineState.FAILED.value}")
        try:
            await self.telegram.send_message(chat_id, self.apology_message)
        except Exception as e:
            logger.error(f"Apology not delivered to chat_id={chat_id}, giving up: {e}")
        return PipelineState.FAILED


# Global pipeline instance (built once from settings)
_pipeline: Optional[Pipeline] = None

# Strong references to in-flight webhook tasks; asyncio only keeps weak ones
_background_tasks: set[asyncio.Task] = set()


def get_pipeline() -> Pipeline:
    """Get or create the pipeline singleton."""
    global _pipeline
    if _pipeline is None:
        settings = get_settings()
        _pipeline = Pipeline(
            telegram=get_telegram_api(),
            completion=get_completion_client(),
            max_message_length=settings.max_message_length,
            parse_mode=settings.telegram_parse_mode,
        )
    return _pipeline


def _log_task_result(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} failed: {exc}", exc_info=exc)


def dispatch_in_background(pipeline: Pipeline, event: InboundEvent) -> asyncio.Task:
    """
    Schedule ``event`` on its own task and return immediately.

    Used by the webhook so Telegram gets its 200 before the answer is ready.
    """
    task = asyncio.create_task(
        pipeline.handle_event(event),
        name=f"relay-update-{event.sequence_id}"
    )
    _background_tasks.add(task)
    task.add_done_callback(_log_task_result)
    return task


async def wait_for_background_tasks() -> None:
    """Wait for all in-flight webhook tasks (shutdown and tests)."""
    while _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)


async def run_polling(
    transport: PollingTransport,
    deduplicator: UpdateDeduplicator,
    pipeline: Pipeline,
    max_batches: Optional[int] = None,
) -> None:
    """
    Sequential long-poll loop.

    One batch at a time, one event at a time, in arrival order. Each event is
    acknowledged after the pipeline reached a terminal state, so a message
    that keeps failing is attempted once and never blocks the queue.

    ``max_batches`` bounds the loop (tests); None polls until cancelled.
    """
    batches = 0
    while max_batches is None or batches < max_batches:
        batches += 1
        try:
            events = await transport.receive()
        except Exception as e:
            # receive() already backs off on Bot API errors; anything else lands here
            logger.error(f"Polling failed, retrying in {transport.backoff_seconds}s: {e}", exc_info=True)
            await asyncio.sleep(transport.backoff_seconds)
            continue

        for event in events:
            if not deduplicator.should_process(event):
                logger.info(f"Skipping already handled update_id={event.sequence_id}")
                continue
            try:
                await pipeline.handle_event(event)
            except Exception as e:
                logger.error(f"Pipeline raised for update_id={event.sequence_id}: {e}", exc_info=True)
            deduplicator.acknowledge(event)

        transport.finish_batch()


def log_polling_exit(task: asyncio.Task) -> None:
    """Done-callback for the polling task: the loop only ends on cancellation."""
    if task.cancelled():
        logger.info("Long polling stopped")
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Long polling crashed: {exc}", exc_info=exc)
    else:
        logger.warning("Long polling exited")


async def start_polling(
    pipeline: Optional[Pipeline] = None,
    telegram: Optional[TelegramAPI] = None,
    max_batches: Optional[int] = None,
) -> UpdateDeduplicator:
    """
    Polling-mode entry point: drop the webhook, optionally skip the backlog,
    then poll forever (or ``max_batches`` times).
    """
    settings = get_settings()
    telegram = telegram or get_telegram_api()
    pipeline = pipeline or get_pipeline()
    deduplicator = UpdateDeduplicator()
    transport = PollingTransport(
        telegram,
        deduplicator,
        poll_timeout=settings.poll_timeout,
        backoff_seconds=settings.poll_backoff_seconds,
    )

    # getUpdates is refused (409) while a webhook is registered
    try:
        await telegram.delete_webhook()
    except TelegramAPIError as e:
        logger.warning(f"Could not delete webhook before polling: {e}")

    if settings.drop_pending_updates:
        try:
            await transport.discard_backlog()
        except TelegramAPIError as e:
            logger.warning(f"Could not discard pending updates: {e}")

    logger.info(f"Long polling started (timeout={settings.poll_timeout}s)")
    await run_polling(transport, deduplicator, pipeline, max_batches=max_batches)
    return deduplicator
