"""RetryingReceiverFactory — consumer-side wiring of registry, orchestrator and receivers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from .orchestrator import RetryOrchestrator
from .receiver import RetryingReceiver
from .registry import SenderRegistry

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from .codec import RetryMetadataCodec
    from .policy import RetryPolicy
    from .ports import IMessageReceiver, IMessageSender

logger = logging.getLogger("servicebus_retry.factory")


@runtime_checkable
class IBrokerConnection(Protocol):
    """A broker client able to open senders and receivers by entity name."""

    def create_sender(self, destination_name: str) -> IMessageSender: ...

    def create_receiver(
        self,
        destination_name: str,
        subscription_name: str | None = None,
    ) -> IMessageReceiver: ...


class RetryingReceiverFactory:
    """Owns the sender registry and orchestrator for one consumer-side service.

    Build it once at startup and hand out receivers from it::

        factory = RetryingReceiverFactory(connection)
        receiver = factory.create_receiver("orders", policy)
        await receiver.subscribe(MessageHandlers(process_message=handle))
        ...
        await factory.close()
    """

    def __init__(
        self,
        connection: IBrokerConnection,
        *,
        codec: RetryMetadataCodec | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._connection = connection
        self._registry = SenderRegistry(connection)
        self._orchestrator = RetryOrchestrator(
            self._registry, codec=codec, clock=clock
        )
        self._receivers: list[RetryingReceiver] = []

    @property
    def registry(self) -> SenderRegistry:
        return self._registry

    @property
    def orchestrator(self) -> RetryOrchestrator:
        return self._orchestrator

    def create_receiver(
        self,
        destination_name: str,
        policy: RetryPolicy,
        *,
        subscription_name: str | None = None,
    ) -> RetryingReceiver:
        """Register a sender for *destination_name* and return a retrying receiver.

        Retry clones are scheduled back onto *destination_name*; for a topic
        subscription that is the topic itself.
        """
        self._registry.register(destination_name)
        inner = self._connection.create_receiver(destination_name, subscription_name)
        receiver = RetryingReceiver(inner, self._orchestrator, destination_name, policy)
        self._receivers.append(receiver)
        logger.info(
            "Created retrying receiver for %s (max_attempts=%d)",
            inner.entity_path,
            policy.max_attempts,
        )
        return receiver

    async def close(self) -> None:
        """Close every receiver handed out, then every registered sender."""
        receivers, self._receivers = self._receivers, []
        for receiver in receivers:
            try:
                await receiver.close()
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Failed to close receiver for %s",
                    receiver.destination_name,
                    exc_info=True,
                )
        await self._registry.close()
