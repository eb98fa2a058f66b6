"""Broker ports consumed by the retry layer.

Infrastructure packages (``servicebus_retry.azure``, ``servicebus_retry.memory``)
provide concrete adapters.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping
    from datetime import datetime

    from .metadata import RetryMessage


@runtime_checkable
class InboundMessage(Protocol):
    """A received message as seen by the codec.

    ``ServiceBusReceivedMessage`` from azure-servicebus satisfies this as is.
    """

    message_id: Any
    content_type: str | None
    body: Any
    application_properties: Mapping[Any, Any] | None


@dataclass(frozen=True)
class ProcessErrorArgs:
    """Transport-level failure reported to ``MessageHandlers.process_error``."""

    error: BaseException
    error_source: str
    entity_path: str


@dataclass(frozen=True)
class MessageHandlers:
    """Callbacks passed to ``IMessageReceiver.subscribe``."""

    process_message: Callable[[Any], Awaitable[None]] | None = None
    process_error: Callable[[ProcessErrorArgs], Awaitable[None]] | None = None


@dataclass(frozen=True)
class SubscribeOptions:
    """Delivery options honoured by receiver adapters.

    Attributes:
        auto_complete_messages: Complete a message after the handler returns,
            unless the handler already settled it.
        max_concurrent_calls: Messages processed concurrently per batch.
        max_wait_time: Seconds to wait for a batch before polling again.
    """

    auto_complete_messages: bool = True
    max_concurrent_calls: int = 1
    max_wait_time: float = 5.0


@runtime_checkable
class IMessageSender(Protocol):
    """Port for scheduling a message onto a destination."""

    async def schedule_messages(
        self, message: RetryMessage, scheduled_time: datetime
    ) -> Any:
        """Enqueue *message* now, visible to consumers at *scheduled_time*."""
        ...

    async def close(self) -> None:
        """Release the underlying link."""
        ...


@runtime_checkable
class ISenderFactory(Protocol):
    """Port for opening senders by destination name (the broker client)."""

    def create_sender(self, destination_name: str) -> IMessageSender:
        """Open a sender for *destination_name*."""
        ...


@runtime_checkable
class IMessageReceiver(Protocol):
    """Port for a push-style consumer bound to one entity."""

    @property
    def entity_path(self) -> str:
        """Queue name or ``topic/Subscriptions/name`` path."""
        ...

    async def subscribe(
        self,
        handlers: MessageHandlers,
        options: SubscribeOptions | None = None,
    ) -> None:
        """Start delivering messages to *handlers*."""
        ...

    async def close(self) -> None:
        """Stop delivery and release the link."""
        ...

    async def complete_message(self, message: Any) -> None:
        """Settle *message* as processed."""
        ...

    async def dead_letter_message(
        self,
        message: Any,
        *,
        reason: str | None = None,
        error_description: str | None = None,
    ) -> None:
        """Move *message* to the entity's dead-letter sub-queue."""
        ...

    async def abandon_message(self, message: Any) -> None:
        """Release the lock so *message* is redelivered."""
        ...
