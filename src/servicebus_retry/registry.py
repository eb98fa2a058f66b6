"""SenderRegistry — one cached sender per destination name."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .ports import IMessageSender, ISenderFactory

logger = logging.getLogger("servicebus_retry.registry")


class SenderRegistry:
    """Maps destination name to an open sender.

    Owned by the consumer-side service and injected wherever retries are
    scheduled. Entries are created once and kept until ``close()``; the set of
    destinations is bounded by configuration. Mutation and lookup share a lock
    so one registry can serve receivers running on several threads.

    Usage::

        registry = SenderRegistry(connection)
        registry.register("orders")
        sender = registry.get("orders")
    """

    def __init__(self, factory: ISenderFactory) -> None:
        self._factory = factory
        self._senders: dict[str, IMessageSender] = {}
        self._lock = threading.Lock()

    def register(self, destination_name: str) -> None:
        """Open a sender for *destination_name* unless one exists already."""
        with self._lock:
            if destination_name in self._senders:
                return
            self._senders[destination_name] = self._factory.create_sender(
                destination_name
            )
        logger.debug("Registered sender for destination %s", destination_name)

    def get(self, destination_name: str) -> IMessageSender | None:
        """Return the sender for *destination_name*, or None if unregistered."""
        with self._lock:
            return self._senders.get(destination_name)

    def __contains__(self, destination_name: object) -> bool:
        with self._lock:
            return destination_name in self._senders

    @property
    def destinations(self) -> list[str]:
        """Registered destination names, sorted."""
        with self._lock:
            return sorted(self._senders)

    async def close(self) -> None:
        """Close every cached sender. Call once on service shutdown."""
        with self._lock:
            senders = list(self._senders.items())
            self._senders.clear()
        for name, sender in senders:
            try:
                await sender.close()
            except Exception:  # noqa: BLE001
                logger.warning("Failed to close sender for %s", name, exc_info=True)
