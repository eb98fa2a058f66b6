"""ServiceBusSenderAdapter — IMessageSender over an async Service Bus sender."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from azure.servicebus import ServiceBusMessage
from azure.servicebus.amqp import AmqpAnnotatedMessage, AmqpMessageProperties
from azure.servicebus.exceptions import ServiceBusError

from ..exceptions import MessagingConnectionError, MessagingSerializationError
from ..ports import IMessageSender

if TYPE_CHECKING:
    from datetime import datetime

    from azure.servicebus.aio import ServiceBusSender

    from ..metadata import RetryMessage


def to_service_bus_message(
    message: RetryMessage,
) -> ServiceBusMessage | AmqpAnnotatedMessage:
    """Convert a retry clone into the SDK's outbound message type.

    Received data bodies arrive as an iterable of byte sections and are
    joined; non-binary bodies (AMQP value bodies) are sent as value bodies.
    """
    body = message.body
    if isinstance(body, bytearray):
        body = bytes(body)
    if body is None or isinstance(body, (str, bytes)):
        return ServiceBusMessage(
            body,
            message_id=message.message_id,
            content_type=message.content_type,
            application_properties=message.application_properties,
        )
    if isinstance(body, Iterable) and not isinstance(body, Mapping):
        sections = list(body)
        if all(isinstance(s, (bytes, bytearray)) for s in sections):
            return ServiceBusMessage(
                b"".join(sections),
                message_id=message.message_id,
                content_type=message.content_type,
                application_properties=message.application_properties,
            )
        body = sections
    try:
        return AmqpAnnotatedMessage(
            value_body=body,
            properties=AmqpMessageProperties(
                message_id=message.message_id,
                content_type=message.content_type,
            ),
            application_properties=message.application_properties,
        )
    except (TypeError, ValueError) as e:
        raise MessagingSerializationError(str(e)) from e


class ServiceBusSenderAdapter(IMessageSender):
    """Schedules retry clones through ``ServiceBusSender.schedule_messages``."""

    def __init__(self, sender: ServiceBusSender, destination_name: str) -> None:
        self._sender = sender
        self._destination_name = destination_name

    @property
    def destination_name(self) -> str:
        return self._destination_name

    async def schedule_messages(
        self, message: RetryMessage, scheduled_time: datetime
    ) -> list[int]:
        """Schedule *message*; returns the broker's sequence numbers."""
        outbound: Any = to_service_bus_message(message)
        try:
            return list(await self._sender.schedule_messages(outbound, scheduled_time))
        except ServiceBusError as e:
            raise MessagingConnectionError(str(e)) from e

    async def close(self) -> None:
        await self._sender.close()
