"""In-memory broker for testing — scheduled delivery and dead-letter sub-queues."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from ..metadata import RetryMessage
from .receiver import InMemoryReceiver
from .sender import InMemorySender

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True)
class InMemoryMessage:
    """A delivered message; satisfies ``InboundMessage``."""

    message_id: str | None = None
    body: Any = None
    content_type: str | None = None
    application_properties: dict[str, Any] = field(default_factory=dict)
    lock_token: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def from_retry_message(cls, message: RetryMessage) -> InMemoryMessage:
        return cls(
            message_id=message.message_id,
            body=message.body,
            content_type=message.content_type,
            application_properties=dict(message.application_properties),
        )


@dataclass(frozen=True)
class ScheduledMessage:
    entity: str
    message: RetryMessage
    scheduled_time: datetime


@dataclass(frozen=True)
class DeadLetteredMessage:
    entity_path: str
    message: Any
    reason: str | None
    error_description: str | None


class InMemoryServiceBus:
    """Shared broker state: subscribers, scheduled messages and settlements.

    Also acts as the broker connection (``create_sender`` / ``create_receiver``)
    so it can be handed to ``RetryingReceiverFactory`` in tests. Time is
    simulated: ``deliver_scheduled()`` releases every scheduled message now.
    """

    def __init__(self) -> None:
        self._receivers: dict[str, list[InMemoryReceiver]] = {}
        self._scheduled: list[ScheduledMessage] = []
        self._completed: list[tuple[str, Any]] = []
        self._abandoned: list[tuple[str, Any]] = []
        self._dead_lettered: list[DeadLetteredMessage] = []
        self._sequence_number = 0
        self.senders_created: list[str] = []

    def create_sender(self, destination_name: str) -> InMemorySender:
        self.senders_created.append(destination_name)
        return InMemorySender(self, destination_name)

    def create_receiver(
        self,
        destination_name: str,
        subscription_name: str | None = None,
    ) -> InMemoryReceiver:
        return InMemoryReceiver(self, destination_name, subscription_name)

    def attach(self, entity: str, receiver: InMemoryReceiver) -> None:
        self._receivers.setdefault(entity, []).append(receiver)

    def detach(self, entity: str, receiver: InMemoryReceiver) -> None:
        receivers = self._receivers.get(entity, [])
        if receiver in receivers:
            receivers.remove(receiver)

    async def send(self, entity: str, message: InMemoryMessage | RetryMessage) -> None:
        """Deliver *message* to every receiver subscribed to *entity*.

        Each receiver gets its own copy with a fresh lock token, as topic
        subscriptions would.
        """
        if isinstance(message, RetryMessage):
            message = InMemoryMessage.from_retry_message(message)
        for receiver in list(self._receivers.get(entity, [])):
            copy = replace(message, lock_token=str(uuid.uuid4()))
            await receiver.deliver(copy)

    def schedule(self, entity: str, message: RetryMessage, scheduled_time: datetime) -> int:
        """Hold *message* until ``deliver_scheduled``; return its sequence number.

        Sequence numbers increase monotonically for the life of the bus.
        """
        self._sequence_number += 1
        self._scheduled.append(ScheduledMessage(entity, message, scheduled_time))
        return self._sequence_number

    async def deliver_scheduled(self) -> int:
        """Deliver all scheduled messages in schedule order; return the count."""
        pending = sorted(self._scheduled, key=lambda s: s.scheduled_time)
        self._scheduled.clear()
        for item in pending:
            await self.send(item.entity, item.message)
        return len(pending)

    def record_completed(self, entity_path: str, message: Any) -> None:
        self._completed.append((entity_path, message))

    def record_abandoned(self, entity_path: str, message: Any) -> None:
        self._abandoned.append((entity_path, message))

    def record_dead_lettered(
        self,
        entity_path: str,
        message: Any,
        reason: str | None,
        error_description: str | None,
    ) -> None:
        self._dead_lettered.append(
            DeadLetteredMessage(entity_path, message, reason, error_description)
        )

    def get_scheduled(self, entity: str | None = None) -> list[ScheduledMessage]:
        """Return scheduled (not yet delivered) messages, optionally per entity."""
        return [s for s in self._scheduled if entity is None or s.entity == entity]

    def get_completed(self) -> list[tuple[str, Any]]:
        return list(self._completed)

    def get_abandoned(self) -> list[tuple[str, Any]]:
        return list(self._abandoned)

    def get_dead_lettered(
        self, entity_path: str | None = None
    ) -> list[DeadLetteredMessage]:
        """Return dead-lettered messages, optionally for one entity path."""
        return [
            d
            for d in self._dead_lettered
            if entity_path is None or d.entity_path == entity_path
        ]

    def clear(self) -> None:
        """Drop subscribers, scheduled messages and settlements (test teardown)."""
        self._receivers.clear()
        self._scheduled.clear()
        self._completed.clear()
        self._abandoned.clear()
        self._dead_lettered.clear()
        self.senders_created.clear()
