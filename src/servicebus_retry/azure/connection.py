"""Azure Service Bus client management."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from azure.identity.aio import DefaultAzureCredential
from azure.servicebus import ServiceBusReceiveMode
from azure.servicebus.aio import ServiceBusClient

from ..exceptions import ServiceBusConfigurationError
from .receiver import ServiceBusReceiverAdapter
from .sender import ServiceBusSenderAdapter

if TYPE_CHECKING:
    from collections.abc import Iterable

    from azure.core.credentials_async import AsyncTokenCredential

logger = logging.getLogger("servicebus_retry.azure")


class ServiceBusConnectionManager:
    """Manages one async ``ServiceBusClient`` and opens senders/receivers on it.

    Authenticate with either a connection string or a fully qualified
    namespace; the namespace form uses ``DefaultAzureCredential`` unless a
    credential is given. Senders are queue senders except for names listed in
    ``topic_names``.
    """

    def __init__(
        self,
        connection_string: str | None = None,
        *,
        fully_qualified_namespace: str | None = None,
        credential: AsyncTokenCredential | None = None,
        topic_names: Iterable[str] = (),
        **client_kwargs: Any,
    ) -> None:
        """Configure authentication and optional ``ServiceBusClient`` kwargs.

        Raises:
            ServiceBusConfigurationError: Unless exactly one of
                ``connection_string`` / ``fully_qualified_namespace`` is set.
        """
        if bool(connection_string) == bool(fully_qualified_namespace):
            raise ServiceBusConfigurationError(
                "Exactly one of connection_string or fully_qualified_namespace "
                "is required"
            )
        self._connection_string = connection_string
        self._namespace = fully_qualified_namespace
        self._credential = credential
        self._owns_credential = False
        self._topic_names = frozenset(topic_names)
        self._client_kwargs = client_kwargs
        self._client: ServiceBusClient | None = None

    def get_client(self) -> ServiceBusClient:
        """Return the shared client; create it if needed."""
        if self._client is None:
            if self._connection_string:
                logger.info("Connecting to Azure Service Bus using connection string")
                self._client = ServiceBusClient.from_connection_string(
                    conn_str=self._connection_string, **self._client_kwargs
                )
            else:
                logger.info(
                    "Connecting to Azure Service Bus namespace %s", self._namespace
                )
                if self._credential is None:
                    self._credential = DefaultAzureCredential()
                    self._owns_credential = True
                self._client = ServiceBusClient(
                    fully_qualified_namespace=str(self._namespace),
                    credential=self._credential,
                    **self._client_kwargs,
                )
        return self._client

    def create_sender(self, destination_name: str) -> ServiceBusSenderAdapter:
        """Open a queue sender, or a topic sender for names in ``topic_names``."""
        client = self.get_client()
        if destination_name in self._topic_names:
            sender = client.get_topic_sender(topic_name=destination_name)
        else:
            sender = client.get_queue_sender(queue_name=destination_name)
        return ServiceBusSenderAdapter(sender, destination_name)

    def create_receiver(
        self,
        destination_name: str,
        subscription_name: str | None = None,
    ) -> ServiceBusReceiverAdapter:
        """Open a peek-lock receiver on a queue or a topic subscription."""
        client = self.get_client()
        if subscription_name:
            receiver = client.get_subscription_receiver(
                topic_name=destination_name,
                subscription_name=subscription_name,
                receive_mode=ServiceBusReceiveMode.PEEK_LOCK,
            )
            entity_path = f"{destination_name}/Subscriptions/{subscription_name}"
        else:
            receiver = client.get_queue_receiver(
                queue_name=destination_name,
                receive_mode=ServiceBusReceiveMode.PEEK_LOCK,
            )
            entity_path = destination_name
        return ServiceBusReceiverAdapter(receiver, entity_path)

    async def close(self) -> None:
        """Close the client, and the credential if this manager created it."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info("Disconnected from Azure Service Bus")
        if self._owns_credential and self._credential is not None:
            await self._credential.close()
            self._credential = None
            self._owns_credential = False
