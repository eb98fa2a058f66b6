"""InMemorySender — IMessageSender with assertion helpers for tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..ports import IMessageSender

if TYPE_CHECKING:
    from datetime import datetime

    from ..metadata import RetryMessage
    from .bus import InMemoryServiceBus


class InMemorySender(IMessageSender):
    """Schedules messages on an ``InMemoryServiceBus`` entity."""

    def __init__(self, bus: InMemoryServiceBus, destination_name: str) -> None:
        self._bus = bus
        self._destination_name = destination_name
        self.closed = False

    @property
    def destination_name(self) -> str:
        return self._destination_name

    async def schedule_messages(
        self, message: RetryMessage, scheduled_time: datetime
    ) -> list[int]:
        """Schedule on the bus; returns a sequence number like the real broker."""
        return [self._bus.schedule(self._destination_name, message, scheduled_time)]

    async def close(self) -> None:
        self.closed = True

    def assert_scheduled(self, count: int = 1) -> None:
        """Assert that exactly `count` messages are waiting on this destination."""
        scheduled = self._bus.get_scheduled(self._destination_name)
        assert len(scheduled) == count, (
            f"Expected {count} scheduled message(s) on {self._destination_name!r}, "
            f"got {len(scheduled)}: {[s.message.message_id for s in scheduled]}"
        )
