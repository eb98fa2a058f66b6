"""Pytest fixtures for servicebus-retry tests."""

from __future__ import annotations

import sys
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Ensure the package is importable when running pytest from the repo root
# without pip install -e .
_src = Path(__file__).resolve().parent.parent / "src"
if _src.is_dir() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from servicebus_retry.codec import RetryMetadataCodec  # noqa: E402
from servicebus_retry.memory import InMemoryMessage, InMemoryServiceBus  # noqa: E402
from servicebus_retry.orchestrator import RetryOrchestrator  # noqa: E402
from servicebus_retry.policy import RetryPolicy  # noqa: E402
from servicebus_retry.registry import SenderRegistry  # noqa: E402

NOW = datetime(2025, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, delay_schedule=(100, 200, 300))


@pytest.fixture
def codec() -> RetryMetadataCodec:
    return RetryMetadataCodec(clock=fixed_clock)


@pytest.fixture
def message() -> InMemoryMessage:
    return InMemoryMessage(
        message_id="test-id",
        body={"foo": "bar"},
        content_type="application/json",
        application_properties={"tenant": "acme"},
    )


@pytest.fixture
def mock_sender() -> MagicMock:
    sender = MagicMock()
    sender.schedule_messages = AsyncMock(return_value=[1])
    sender.close = AsyncMock()
    return sender


@pytest.fixture
def mock_factory(mock_sender: MagicMock) -> MagicMock:
    factory = MagicMock()
    factory.create_sender = MagicMock(return_value=mock_sender)
    return factory


@pytest.fixture
def mock_receiver() -> MagicMock:
    receiver = MagicMock()
    receiver.entity_path = "queue1"
    receiver.subscribe = AsyncMock()
    receiver.close = AsyncMock()
    receiver.complete_message = AsyncMock()
    receiver.dead_letter_message = AsyncMock()
    receiver.abandon_message = AsyncMock()
    return receiver


@pytest.fixture
def registry(mock_factory: MagicMock) -> SenderRegistry:
    return SenderRegistry(mock_factory)


@pytest.fixture
def orchestrator(registry: SenderRegistry) -> RetryOrchestrator:
    return RetryOrchestrator(registry, clock=fixed_clock)


@pytest.fixture
def bus() -> InMemoryServiceBus:
    return InMemoryServiceBus()


def _retry_properties(attempt: int, **overrides: Any) -> dict[str, Any]:
    props: dict[str, Any] = {
        "x-retry-original-id": "orig-id",
        "x-retry-attempt": attempt,
        "x-retry-first-attempt": "2025-01-01T00:00:00.000Z",
        "x-retry-last-attempt": "2025-01-01T00:00:01.000Z",
        "x-retry-max-attempts": 3,
        "x-retry-delay-intervals": "[100,200,300]",
    }
    props.update(overrides)
    return props


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return fixed_clock


@pytest.fixture
def retry_properties() -> Callable[..., dict[str, Any]]:
    """Application properties as a previous retry would have written them."""
    return _retry_properties
