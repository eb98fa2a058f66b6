"""Azure Service Bus transport adapter (azure-servicebus, azure-identity)."""

from __future__ import annotations

from .connection import ServiceBusConnectionManager
from .receiver import ServiceBusReceiverAdapter
from .sender import ServiceBusSenderAdapter, to_service_bus_message

__all__ = [
    "ServiceBusConnectionManager",
    "ServiceBusReceiverAdapter",
    "ServiceBusSenderAdapter",
    "to_service_bus_message",
]
