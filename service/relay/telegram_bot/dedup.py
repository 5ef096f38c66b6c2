"""
Update cursor for long-polling mode.

Telegram re-delivers every update whose update_id is >= the offset passed to
getUpdates, so the offset is the only dedup state the relay needs. The cursor
is owned by one UpdateDeduplicator and only the polling loop writes to it.
"""

from .logging_config import bot_logger as logger
from .schemas import InboundEvent


class UpdateDeduplicator:
    """
    Tracks the next update_id to request.

    The cursor only ever moves forward. It is advanced once per event, after
    the pipeline finished with it, whether processing succeeded or failed.
    """

    def __init__(self, cursor: int = 0):
        self._cursor = cursor

    @property
    def cursor(self) -> int:
        return self._cursor

    def should_process(self, event: InboundEvent) -> bool:
        """False for events at or behind an already acknowledged position."""
        if event.sequence_id is None:
            return True
        return event.sequence_id >= self._cursor

    def acknowledge(self, event: InboundEvent) -> None:
        """Mark ``event`` handled so it is never requested again."""
        if event.sequence_id is not None:
            self.skip(event.sequence_id)

    def skip(self, update_id: int) -> None:
        """Advance past an update that produced no event."""
        next_cursor = update_id + 1
        if next_cursor > self._cursor:
            logger.debug(f"Cursor {self._cursor} -> {next_cursor}")
            self._cursor = next_cursor
