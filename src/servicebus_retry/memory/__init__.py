"""In-memory broker adapters for testing."""

from __future__ import annotations

from .bus import DeadLetteredMessage, InMemoryMessage, InMemoryServiceBus, ScheduledMessage
from .receiver import InMemoryReceiver
from .sender import InMemorySender

__all__ = [
    "DeadLetteredMessage",
    "InMemoryMessage",
    "InMemoryReceiver",
    "InMemorySender",
    "InMemoryServiceBus",
    "ScheduledMessage",
]
