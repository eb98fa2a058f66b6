"""Exceptions for servicebus-retry."""

from __future__ import annotations


class ServiceBusRetryError(Exception):
    """Root exception for the entire servicebus-retry package."""


class InfrastructureError(ServiceBusRetryError):
    """Base class for all infrastructure-related errors."""


class MessagingError(InfrastructureError):
    """Base class for all messaging-related infrastructure errors."""


class MessagingConnectionError(MessagingError):
    """Raised when connectivity to the message broker fails."""


class MessagingSerializationError(MessagingError):
    """Raised when a message body cannot be converted for the broker."""


class MessageAlreadySettledError(MessagingError):
    """Raised when a message is completed, abandoned or dead-lettered twice."""


class RetryConfigurationError(MessagingError):
    """Base class for wiring mistakes that must never be retried.

    These surface during development or integration, not in steady state.
    """


class MissingMessageHandlerError(RetryConfigurationError):
    """Raised when ``subscribe`` is called without a message handler."""

    def __init__(self, message: str = "process_message handler is required") -> None:
        super().__init__(message)


class SenderNotRegisteredError(RetryConfigurationError):
    """Raised when a retry is scheduled for a destination with no sender."""

    def __init__(self, destination_name: str) -> None:
        self.destination_name = destination_name
        super().__init__(f"No sender registered for destination: {destination_name}")


class ServiceBusConfigurationError(RetryConfigurationError):
    """Raised when broker connection settings are missing or contradictory."""


class DeadLetterError(MessagingError):
    """Raised when a message cannot be routed to the dead-letter queue."""

    def __init__(self, message: str, message_id: str | None = None) -> None:
        self.message_id = message_id
        super().__init__(message)


class DeadLetterSettlementError(DeadLetterError):
    """Dead-lettering failed after the retry budget was exhausted.

    Carries the settlement failure (as ``__cause__``) and the text of the
    handler error that exhausted the budget.
    """

    def __init__(
        self,
        dead_letter_error: BaseException,
        original_error_text: str,
        message_id: str | None = None,
    ) -> None:
        self.original_error_text = original_error_text
        super().__init__(
            f"Failed to dead-letter message: {dead_letter_error}. "
            f"Original error: {original_error_text}",
            message_id=message_id,
        )
