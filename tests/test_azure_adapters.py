"""Unit tests for the Azure Service Bus adapters (SDK clients mocked)."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from azure.servicebus import ServiceBusMessage, ServiceBusReceiveMode
from azure.servicebus.amqp import AmqpAnnotatedMessage, AmqpMessageBodyType
from azure.servicebus.exceptions import ServiceBusError

from servicebus_retry.azure import (
    ServiceBusConnectionManager,
    ServiceBusReceiverAdapter,
    ServiceBusSenderAdapter,
    to_service_bus_message,
)
from servicebus_retry.exceptions import (
    MessagingConnectionError,
    MessagingError,
    ServiceBusConfigurationError,
)
from servicebus_retry.metadata import RetryMessage
from servicebus_retry.ports import MessageHandlers, ProcessErrorArgs

SCHEDULED_AT = datetime(2025, 1, 2, tzinfo=timezone.utc)


def _retry_message(body: Any) -> RetryMessage:
    return RetryMessage(
        message_id="m1-retry-1",
        body=body,
        content_type="application/json",
        application_properties={"x-retry-attempt": 1},
    )


# ── message conversion ──────────────────────────────────────────────


def test_bytes_body_becomes_service_bus_message() -> None:
    out = to_service_bus_message(_retry_message(b'{"a":1}'))
    assert isinstance(out, ServiceBusMessage)
    assert out.message_id == "m1-retry-1"
    assert out.content_type == "application/json"
    assert out.application_properties == {"x-retry-attempt": 1}
    assert b"".join(out.body) == b'{"a":1}'


def test_received_data_sections_are_joined() -> None:
    out = to_service_bus_message(_retry_message(iter([b"ab", b"cd"])))
    assert isinstance(out, ServiceBusMessage)
    assert b"".join(out.body) == b"abcd"


def test_value_body_becomes_annotated_message() -> None:
    out = to_service_bus_message(_retry_message({"foo": "bar"}))
    assert isinstance(out, AmqpAnnotatedMessage)
    assert out.body_type == AmqpMessageBodyType.VALUE
    assert out.body == {"foo": "bar"}
    assert out.properties.message_id == "m1-retry-1"
    assert out.application_properties == {"x-retry-attempt": 1}


# ── sender adapter ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_sender_schedules_and_returns_sequence_numbers() -> None:
    sdk_sender = MagicMock()
    sdk_sender.schedule_messages = AsyncMock(return_value=[42])
    adapter = ServiceBusSenderAdapter(sdk_sender, "orders")

    result = await adapter.schedule_messages(_retry_message(b"x"), SCHEDULED_AT)

    assert result == [42]
    outbound, when = sdk_sender.schedule_messages.await_args.args
    assert isinstance(outbound, ServiceBusMessage)
    assert when == SCHEDULED_AT


@pytest.mark.asyncio
async def test_sender_wraps_sdk_errors() -> None:
    sdk_sender = MagicMock()
    sdk_sender.schedule_messages = AsyncMock(side_effect=ServiceBusError("link lost"))
    adapter = ServiceBusSenderAdapter(sdk_sender, "orders")

    with pytest.raises(MessagingConnectionError, match="link lost"):
        await adapter.schedule_messages(_retry_message(b"x"), SCHEDULED_AT)


@pytest.mark.asyncio
async def test_sender_close() -> None:
    sdk_sender = MagicMock(close=AsyncMock())
    await ServiceBusSenderAdapter(sdk_sender, "orders").close()
    sdk_sender.close.assert_awaited_once()


# ── connection manager ──────────────────────────────────────────────


@pytest.mark.parametrize(
    "kwargs",
    [{}, {"connection_string": "Endpoint=sb://x/", "fully_qualified_namespace": "x"}],
)
def test_connection_requires_exactly_one_setting(kwargs: dict[str, Any]) -> None:
    with pytest.raises(ServiceBusConfigurationError):
        ServiceBusConnectionManager(**kwargs)


@pytest.fixture
def sdk_client(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    client = MagicMock()
    client.close = AsyncMock()
    client_cls = MagicMock(return_value=client)
    client_cls.from_connection_string = MagicMock(return_value=client)
    monkeypatch.setattr(
        "servicebus_retry.azure.connection.ServiceBusClient", client_cls
    )
    return client


def test_connection_string_client_is_created_once(sdk_client: MagicMock) -> None:
    from servicebus_retry.azure import connection

    manager = ServiceBusConnectionManager("Endpoint=sb://x/")
    assert manager.get_client() is sdk_client
    assert manager.get_client() is sdk_client
    connection.ServiceBusClient.from_connection_string.assert_called_once_with(  # type: ignore[attr-defined]
        conn_str="Endpoint=sb://x/"
    )


def test_senders_are_queue_senders_unless_topic(sdk_client: MagicMock) -> None:
    manager = ServiceBusConnectionManager("Endpoint=sb://x/", topic_names=["events"])

    queue_sender = manager.create_sender("orders")
    topic_sender = manager.create_sender("events")

    sdk_client.get_queue_sender.assert_called_once_with(queue_name="orders")
    sdk_client.get_topic_sender.assert_called_once_with(topic_name="events")
    assert isinstance(queue_sender, ServiceBusSenderAdapter)
    assert topic_sender.destination_name == "events"


def test_receivers_use_peek_lock(sdk_client: MagicMock) -> None:
    manager = ServiceBusConnectionManager("Endpoint=sb://x/")

    queue_receiver = manager.create_receiver("orders")
    sub_receiver = manager.create_receiver("events", "billing")

    sdk_client.get_queue_receiver.assert_called_once_with(
        queue_name="orders", receive_mode=ServiceBusReceiveMode.PEEK_LOCK
    )
    sdk_client.get_subscription_receiver.assert_called_once_with(
        topic_name="events",
        subscription_name="billing",
        receive_mode=ServiceBusReceiveMode.PEEK_LOCK,
    )
    assert queue_receiver.entity_path == "orders"
    assert sub_receiver.entity_path == "events/Subscriptions/billing"


@pytest.mark.asyncio
async def test_namespace_uses_default_credential_and_closes_it(
    sdk_client: MagicMock, monkeypatch: pytest.MonkeyPatch
) -> None:
    credential = MagicMock(close=AsyncMock())
    monkeypatch.setattr(
        "servicebus_retry.azure.connection.DefaultAzureCredential",
        MagicMock(return_value=credential),
    )
    from servicebus_retry.azure import connection

    manager = ServiceBusConnectionManager(
        fully_qualified_namespace="ns.servicebus.windows.net"
    )
    manager.get_client()
    connection.ServiceBusClient.assert_called_once_with(  # type: ignore[attr-defined]
        fully_qualified_namespace="ns.servicebus.windows.net",
        credential=credential,
    )

    await manager.close()

    sdk_client.close.assert_awaited_once()
    credential.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_supplied_credential_is_not_closed(sdk_client: MagicMock) -> None:
    credential = MagicMock(close=AsyncMock())
    manager = ServiceBusConnectionManager(
        fully_qualified_namespace="ns.servicebus.windows.net", credential=credential
    )
    manager.get_client()

    await manager.close()

    credential.close.assert_not_awaited()


# ── receiver adapter ────────────────────────────────────────────────


def _sdk_receiver(*batches: list[Any]) -> MagicMock:
    pending = list(batches)

    async def receive_messages(**_: Any) -> list[Any]:
        if pending:
            return pending.pop(0)
        await asyncio.sleep(0.01)
        return []

    receiver = MagicMock()
    receiver.receive_messages = AsyncMock(side_effect=receive_messages)
    receiver.complete_message = AsyncMock()
    receiver.abandon_message = AsyncMock()
    receiver.dead_letter_message = AsyncMock()
    receiver.close = AsyncMock()
    return receiver


async def _run_until(event: asyncio.Event, adapter: ServiceBusReceiverAdapter) -> None:
    try:
        await asyncio.wait_for(event.wait(), timeout=2)
    finally:
        await adapter.close()


@pytest.mark.asyncio
async def test_successful_message_is_completed() -> None:
    msg = MagicMock(lock_token="t1")
    sdk = _sdk_receiver([msg])
    adapter = ServiceBusReceiverAdapter(sdk, "orders")
    done = asyncio.Event()

    async def handler(message: Any) -> None:
        done.set()

    await adapter.subscribe(MessageHandlers(process_message=handler))
    await _run_until(done, adapter)

    sdk.complete_message.assert_awaited_once_with(msg)
    sdk.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_message_settled_by_handler_is_not_completed() -> None:
    msg = MagicMock(lock_token="t1")
    sdk = _sdk_receiver([msg])
    adapter = ServiceBusReceiverAdapter(sdk, "orders")
    done = asyncio.Event()

    async def handler(message: Any) -> None:
        await adapter.dead_letter_message(message, reason="r", error_description="d")
        done.set()

    await adapter.subscribe(MessageHandlers(process_message=handler))
    await _run_until(done, adapter)

    sdk.dead_letter_message.assert_awaited_once_with(
        msg, reason="r", error_description="d"
    )
    sdk.complete_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_handler_error_abandons_and_reports() -> None:
    msg = MagicMock(lock_token="t1")
    sdk = _sdk_receiver([msg])
    adapter = ServiceBusReceiverAdapter(sdk, "orders")
    errors: list[ProcessErrorArgs] = []
    done = asyncio.Event()

    async def on_error(args: ProcessErrorArgs) -> None:
        errors.append(args)
        done.set()

    await adapter.subscribe(
        MessageHandlers(
            process_message=AsyncMock(side_effect=RuntimeError("boom")),
            process_error=on_error,
        )
    )
    await _run_until(done, adapter)

    sdk.abandon_message.assert_awaited_once_with(msg)
    sdk.complete_message.assert_not_awaited()
    assert errors[0].error_source == "processMessageCallback"
    assert errors[0].entity_path == "orders"
    assert str(errors[0].error) == "boom"


@pytest.mark.asyncio
async def test_receive_error_is_reported() -> None:
    sdk = _sdk_receiver()
    sdk.receive_messages.side_effect = ServiceBusError("connection dropped")
    adapter = ServiceBusReceiverAdapter(sdk, "orders")
    errors: list[ProcessErrorArgs] = []
    done = asyncio.Event()

    async def on_error(args: ProcessErrorArgs) -> None:
        errors.append(args)
        done.set()

    await adapter.subscribe(
        MessageHandlers(process_message=AsyncMock(), process_error=on_error)
    )
    await _run_until(done, adapter)

    assert errors[0].error_source == "receive"


@pytest.mark.asyncio
async def test_subscribe_twice_raises() -> None:
    adapter = ServiceBusReceiverAdapter(_sdk_receiver(), "orders")
    await adapter.subscribe(MessageHandlers(process_message=AsyncMock()))
    try:
        with pytest.raises(MessagingError, match="already subscribed"):
            await adapter.subscribe(MessageHandlers(process_message=AsyncMock()))
    finally:
        await adapter.close()
