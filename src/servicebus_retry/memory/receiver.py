"""InMemoryReceiver — IMessageReceiver with broker-like settlement for tests."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..exceptions import MessageAlreadySettledError, MessagingError
from ..ports import IMessageReceiver, ProcessErrorArgs, SubscribeOptions

if TYPE_CHECKING:
    from ..ports import MessageHandlers
    from .bus import InMemoryServiceBus

logger = logging.getLogger("servicebus_retry.memory")


class InMemoryReceiver(IMessageReceiver):
    """Receives from an ``InMemoryServiceBus`` entity.

    Delivery mirrors the broker SDKs: a message still unsettled after the
    handler returns is completed (when ``auto_complete_messages``); a handler
    error abandons it and is reported to ``process_error``. Settling the same
    delivery twice raises ``MessageAlreadySettledError``.
    """

    def __init__(
        self,
        bus: InMemoryServiceBus,
        destination_name: str,
        subscription_name: str | None = None,
    ) -> None:
        self._bus = bus
        self._destination_name = destination_name
        self._subscription_name = subscription_name
        self._handlers: MessageHandlers | None = None
        self._options = SubscribeOptions()
        self._settled: set[str] = set()
        self.closed = False

    @property
    def entity_path(self) -> str:
        if self._subscription_name:
            return f"{self._destination_name}/Subscriptions/{self._subscription_name}"
        return self._destination_name

    async def subscribe(
        self,
        handlers: MessageHandlers,
        options: SubscribeOptions | None = None,
    ) -> None:
        if self._handlers is not None:
            raise MessagingError(f"Receiver for {self.entity_path} is already subscribed")
        self._handlers = handlers
        self._options = options or SubscribeOptions()
        self._bus.attach(self._destination_name, self)

    async def deliver(self, message: Any) -> None:
        """Run the subscribed handler for one delivery (called by the bus)."""
        handlers = self._handlers
        if handlers is None or handlers.process_message is None:
            return
        try:
            await handlers.process_message(message)
        except Exception as e:  # noqa: BLE001
            if not self._is_settled(message):
                await self.abandon_message(message)
            await self._report(handlers, e)
            return
        if self._options.auto_complete_messages and not self._is_settled(message):
            await self.complete_message(message)

    async def _report(self, handlers: MessageHandlers, error: BaseException) -> None:
        if handlers.process_error is None:
            logger.error("Unhandled error on %s: %s", self.entity_path, error)
            return
        await handlers.process_error(
            ProcessErrorArgs(
                error=error,
                error_source="processMessageCallback",
                entity_path=self.entity_path,
            )
        )

    def _is_settled(self, message: Any) -> bool:
        return getattr(message, "lock_token", None) in self._settled

    def _settle(self, message: Any) -> None:
        token = getattr(message, "lock_token", None)
        if token in self._settled:
            raise MessageAlreadySettledError(
                f"Message {getattr(message, 'message_id', None)} is already settled"
            )
        self._settled.add(token)

    async def complete_message(self, message: Any) -> None:
        self._settle(message)
        self._bus.record_completed(self.entity_path, message)

    async def abandon_message(self, message: Any) -> None:
        self._settle(message)
        self._bus.record_abandoned(self.entity_path, message)

    async def dead_letter_message(
        self,
        message: Any,
        *,
        reason: str | None = None,
        error_description: str | None = None,
    ) -> None:
        self._settle(message)
        self._bus.record_dead_lettered(
            self.entity_path, message, reason, error_description
        )

    async def close(self) -> None:
        """Stop receiving; scheduled messages stay on the bus."""
        self._bus.detach(self._destination_name, self)
        self._handlers = None
        self.closed = True
