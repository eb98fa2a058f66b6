"""Retry and dead-letter orchestration for message-queue consumers."""

from __future__ import annotations

from .codec import (
    RETRY_ATTEMPT,
    RETRY_DELAY_INTERVALS,
    RETRY_FIRST_ATTEMPT,
    RETRY_LAST_ATTEMPT,
    RETRY_MAX_ATTEMPTS,
    RETRY_ORIGINAL_ID,
    RETRY_PROPERTY_KEYS,
    RETRY_TARGET_ENTITY,
    RetryMetadataCodec,
)
from .exceptions import (
    DeadLetterError,
    DeadLetterSettlementError,
    InfrastructureError,
    MessageAlreadySettledError,
    MessagingConnectionError,
    MessagingError,
    MessagingSerializationError,
    MissingMessageHandlerError,
    RetryConfigurationError,
    SenderNotRegisteredError,
    ServiceBusConfigurationError,
    ServiceBusRetryError,
)
from .factory import IBrokerConnection, RetryingReceiverFactory
from .metadata import RetryMessage, RetryMetadata
from .orchestrator import DEAD_LETTER_REASON, RetryOrchestrator
from .policy import RetryPolicy
from .ports import (
    IMessageReceiver,
    IMessageSender,
    InboundMessage,
    ISenderFactory,
    MessageHandlers,
    ProcessErrorArgs,
    SubscribeOptions,
)
from .receiver import RetryingReceiver
from .registry import SenderRegistry

__all__ = [
    "DEAD_LETTER_REASON",
    "RETRY_ATTEMPT",
    "RETRY_DELAY_INTERVALS",
    "RETRY_FIRST_ATTEMPT",
    "RETRY_LAST_ATTEMPT",
    "RETRY_MAX_ATTEMPTS",
    "RETRY_ORIGINAL_ID",
    "RETRY_PROPERTY_KEYS",
    "RETRY_TARGET_ENTITY",
    "DeadLetterError",
    "DeadLetterSettlementError",
    "IBrokerConnection",
    "IMessageReceiver",
    "IMessageSender",
    "ISenderFactory",
    "InboundMessage",
    "InfrastructureError",
    "MessageAlreadySettledError",
    "MessageHandlers",
    "MessagingConnectionError",
    "MessagingError",
    "MessagingSerializationError",
    "MissingMessageHandlerError",
    "ProcessErrorArgs",
    "RetryConfigurationError",
    "RetryMessage",
    "RetryMetadata",
    "RetryMetadataCodec",
    "RetryOrchestrator",
    "RetryPolicy",
    "RetryingReceiver",
    "RetryingReceiverFactory",
    "SenderNotRegisteredError",
    "SenderRegistry",
    "ServiceBusConfigurationError",
    "ServiceBusRetryError",
    "SubscribeOptions",
]
