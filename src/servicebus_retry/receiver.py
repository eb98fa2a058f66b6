"""RetryingReceiver — a receiver whose subscriptions go through the retry layer."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .codec import retry_target
from .exceptions import MissingMessageHandlerError
from .ports import IMessageReceiver, MessageHandlers

if TYPE_CHECKING:
    from .orchestrator import RetryOrchestrator
    from .policy import RetryPolicy
    from .ports import SubscribeOptions

logger = logging.getLogger("servicebus_retry.receiver")


class RetryingReceiver(IMessageReceiver):
    """Drop-in ``IMessageReceiver`` that applies retry handling on subscribe.

    Only ``subscribe`` changes behaviour. The rest of the receiver contract is
    forwarded to the wrapped receiver unchanged. Members outside the contract
    are not exposed; use ``inner`` for raw access.
    """

    def __init__(
        self,
        inner: IMessageReceiver,
        orchestrator: RetryOrchestrator,
        destination_name: str,
        policy: RetryPolicy,
    ) -> None:
        """Bind a receiver to the destination its retries are scheduled on.

        Args:
            inner: The broker receiver being wrapped.
            orchestrator: Applies retry and dead-letter handling.
            destination_name: Destination whose registered sender schedules
                retry clones.
            policy: Retry budget applied to every subscription.
        """
        self._inner = inner
        self._orchestrator = orchestrator
        self._destination_name = destination_name
        self._policy = policy

    @property
    def inner(self) -> IMessageReceiver:
        return self._inner

    @property
    def destination_name(self) -> str:
        return self._destination_name

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def entity_path(self) -> str:
        return self._inner.entity_path

    async def subscribe(
        self,
        handlers: MessageHandlers,
        options: SubscribeOptions | None = None,
    ) -> None:
        """Subscribe with the message handler wrapped for retries.

        Retry clones addressed to another subscription of the same topic are
        completed without running the handler. ``process_error`` is passed
        through as given, so adapters log errors when it is ``None``.

        Raises:
            MissingMessageHandlerError: When ``handlers.process_message`` is
                missing; raised before the wrapped receiver is touched.
        """
        process_message = getattr(handlers, "process_message", None)
        if process_message is None or not callable(process_message):
            raise MissingMessageHandlerError()

        process_error = getattr(handlers, "process_error", None)
        retrying = self._orchestrator.wrap(
            process_message,
            self._destination_name,
            self._policy,
            self._inner,
        )

        async def wrapped(message: Any) -> None:
            target = retry_target(message)
            if target is not None and target != self._inner.entity_path:
                logger.debug(
                    "Skipping %s on %s; retry addressed to %s",
                    getattr(message, "message_id", None),
                    self._inner.entity_path,
                    target,
                )
                await self._inner.complete_message(message)
                return
            await retrying(message)

        logger.debug(
            "Subscribing to %s with retries via %s",
            self._inner.entity_path,
            self._destination_name,
        )
        await self._inner.subscribe(
            MessageHandlers(process_message=wrapped, process_error=process_error),
            options,
        )

    async def close(self) -> None:
        await self._inner.close()

    async def complete_message(self, message: Any) -> None:
        await self._inner.complete_message(message)

    async def dead_letter_message(
        self,
        message: Any,
        *,
        reason: str | None = None,
        error_description: str | None = None,
    ) -> None:
        await self._inner.dead_letter_message(
            message, reason=reason, error_description=error_description
        )

    async def abandon_message(self, message: Any) -> None:
        await self._inner.abandon_message(message)
