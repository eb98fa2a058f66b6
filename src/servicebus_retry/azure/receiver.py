"""ServiceBusReceiverAdapter — push-style IMessageReceiver over a peek-lock receiver."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

from ..exceptions import MessagingError
from ..ports import IMessageReceiver, ProcessErrorArgs, SubscribeOptions

if TYPE_CHECKING:
    from azure.servicebus.aio import ServiceBusReceiver

    from ..ports import MessageHandlers

logger = logging.getLogger("servicebus_retry.azure")


class ServiceBusReceiverAdapter(IMessageReceiver):
    """Pulls batches from a ``ServiceBusReceiver`` and pushes them to handlers.

    ``subscribe`` starts a background task; ``close`` stops it and closes the
    link. Settlements made through this adapter are tracked per lock token so
    auto-completion skips messages the handler already settled.
    """

    def __init__(self, receiver: ServiceBusReceiver, entity_path: str) -> None:
        self._receiver = receiver
        self._entity_path = entity_path
        self._settled: set[str] = set()
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def entity_path(self) -> str:
        return self._entity_path

    async def subscribe(
        self,
        handlers: MessageHandlers,
        options: SubscribeOptions | None = None,
    ) -> None:
        """Start receiving in the background. Only one subscription per receiver."""
        if self._task is not None:
            raise MessagingError(f"Receiver for {self._entity_path} is already subscribed")
        self._running = True
        self._task = asyncio.create_task(self._run(handlers, options or SubscribeOptions()))
        logger.info("Subscribed to %s", self._entity_path)

    async def _run(self, handlers: MessageHandlers, options: SubscribeOptions) -> None:
        while self._running:
            try:
                batch = await self._receiver.receive_messages(
                    max_message_count=options.max_concurrent_calls,
                    max_wait_time=options.max_wait_time,
                )
            except Exception as e:  # noqa: BLE001
                await self._report(handlers, e, "receive")
                await asyncio.sleep(1)
                continue
            if batch:
                await asyncio.gather(
                    *(self._process(handlers, options, msg) for msg in batch)
                )

    async def _process(
        self,
        handlers: MessageHandlers,
        options: SubscribeOptions,
        message: Any,
    ) -> None:
        token = self._token(message)
        try:
            try:
                if handlers.process_message is not None:
                    await handlers.process_message(message)
            except Exception as e:  # noqa: BLE001
                if options.auto_complete_messages and token not in self._settled:
                    try:
                        await self.abandon_message(message)
                    except Exception as abandon_error:  # noqa: BLE001
                        await self._report(handlers, abandon_error, "abandon")
                await self._report(handlers, e, "processMessageCallback")
                return
            if options.auto_complete_messages and token not in self._settled:
                try:
                    await self.complete_message(message)
                except Exception as e:  # noqa: BLE001
                    await self._report(handlers, e, "complete")
        finally:
            self._settled.discard(token)

    async def _report(
        self, handlers: MessageHandlers, error: BaseException, source: str
    ) -> None:
        if handlers.process_error is None:
            logger.error(
                "Unhandled %s error on %s: %s", source, self._entity_path, error
            )
            return
        try:
            await handlers.process_error(
                ProcessErrorArgs(
                    error=error, error_source=source, entity_path=self._entity_path
                )
            )
        except Exception:  # noqa: BLE001
            logger.exception("process_error handler failed on %s", self._entity_path)

    @staticmethod
    def _token(message: Any) -> str:
        return str(getattr(message, "lock_token", None) or id(message))

    async def complete_message(self, message: Any) -> None:
        await self._receiver.complete_message(message)
        self._settled.add(self._token(message))

    async def abandon_message(self, message: Any) -> None:
        await self._receiver.abandon_message(message)
        self._settled.add(self._token(message))

    async def dead_letter_message(
        self,
        message: Any,
        *,
        reason: str | None = None,
        error_description: str | None = None,
    ) -> None:
        await self._receiver.dead_letter_message(
            message, reason=reason, error_description=error_description
        )
        self._settled.add(self._token(message))

    async def close(self) -> None:
        """Stop the receive loop, then close the link.

        Retries already scheduled with the broker are not revoked.
        """
        self._running = False
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._receiver.close()
        logger.info("Closed receiver for %s", self._entity_path)
