"""RetryOrchestrator — decide retry vs. dead-letter after a handler failure."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from .codec import RetryMetadataCodec, utc_now
from .exceptions import DeadLetterSettlementError, SenderNotRegisteredError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from .metadata import RetryMetadata
    from .policy import RetryPolicy
    from .ports import IMessageReceiver, IMessageSender
    from .registry import SenderRegistry

logger = logging.getLogger("servicebus_retry.orchestrator")

DEAD_LETTER_REASON = "MaxCustomRetryAttemptsExceeded"


def describe_error(error: BaseException) -> str:
    """Return the error's message text, or its class name when empty."""
    return str(error) or type(error).__name__


class RetryOrchestrator:
    """Wraps message handlers with delayed-redelivery and dead-letter semantics.

    Per message the only transitions are::

        Delivered -> Done                       (handler succeeded)
        Delivered -> Scheduled(delay) -> Delivered(clone)
        Delivered -> DeadLettered               (budget exhausted)

    Delays are delegated to the broker's scheduled delivery; nothing here
    sleeps.

    Usage::

        orchestrator = RetryOrchestrator(registry)
        wrapped = orchestrator.wrap(handle_order, "orders", policy, receiver)
        await receiver.subscribe(MessageHandlers(process_message=wrapped))
    """

    def __init__(
        self,
        registry: SenderRegistry,
        *,
        codec: RetryMetadataCodec | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Configure the orchestrator.

        Args:
            registry: Senders used to schedule retry clones.
            codec: Metadata codec; defaults to one sharing ``clock``.
            clock: Source of "now" (UTC) for schedule times and timestamps.
        """
        self._registry = registry
        self._clock = clock or utc_now
        self._codec = codec or RetryMetadataCodec(clock=self._clock)

    @property
    def registry(self) -> SenderRegistry:
        return self._registry

    def wrap(
        self,
        handler: Callable[[Any], Awaitable[None]],
        destination_name: str,
        policy: RetryPolicy,
        receiver: IMessageReceiver,
    ) -> Callable[[Any], Awaitable[None]]:
        """Return *handler* wrapped with retry handling.

        Handler errors never escape the wrapper; only configuration errors and
        a failed dead-letter settlement do.
        """

        async def wrapped(message: Any) -> None:
            try:
                await handler(message)
            except Exception as e:  # noqa: BLE001
                await self.handle_failure(
                    message, destination_name, policy, e, receiver
                )

        return wrapped

    async def handle_failure(
        self,
        message: Any,
        destination_name: str,
        policy: RetryPolicy,
        error: BaseException,
        receiver: IMessageReceiver,
    ) -> None:
        """Schedule a delayed clone of *message*, or dead-letter it."""
        metadata = self._codec.extract(message, policy)
        current_attempt = metadata.attempt_count + 1
        message_id = getattr(message, "message_id", None)

        logger.warning(
            "Message %s failed on attempt %d/%d: %s",
            message_id,
            current_attempt,
            policy.max_attempts,
            describe_error(error),
        )

        if policy.is_exhausted(current_attempt):
            logger.error(
                "Message %s exhausted all retry attempts. Will be moved to DLQ.",
                message_id,
            )
            await self._dead_letter(message, receiver, error)
            return

        sender = self._registry.get(destination_name)
        if sender is None:
            raise SenderNotRegisteredError(destination_name)

        delay_ms = policy.delay_for_attempt(current_attempt)
        # The original must leave the live queue before its clone exists.
        await receiver.complete_message(message)
        # A subscription retries through its topic; address the clone to it.
        entity_path = getattr(receiver, "entity_path", None)
        target_entity = entity_path if entity_path != destination_name else None
        await self._schedule_retry(
            sender,
            message,
            destination_name,
            metadata,
            current_attempt,
            delay_ms,
            target_entity,
        )

    async def _dead_letter(
        self,
        message: Any,
        receiver: IMessageReceiver,
        error: BaseException,
    ) -> None:
        error_text = describe_error(error)
        try:
            await receiver.dead_letter_message(
                message,
                reason=DEAD_LETTER_REASON,
                error_description=f"Custom retry exhausted. Original error: {error_text}",
            )
        except Exception as dlq_error:
            logger.exception(
                "Failed to dead-letter message %s",
                getattr(message, "message_id", None),
            )
            raise DeadLetterSettlementError(
                dlq_error,
                error_text,
                message_id=getattr(message, "message_id", None),
            ) from dlq_error

    async def _schedule_retry(
        self,
        sender: IMessageSender,
        message: Any,
        destination_name: str,
        metadata: RetryMetadata,
        attempt_count: int,
        delay_ms: int,
        target_entity: str | None = None,
    ) -> None:
        scheduled_time = self._clock() + timedelta(milliseconds=delay_ms)
        clone = self._codec.embed(metadata, attempt_count, message, target_entity)
        await sender.schedule_messages(clone, scheduled_time)
        logger.debug(
            "Scheduled %s to %s at %s (attempt %d)",
            clone.message_id,
            destination_name,
            scheduled_time.isoformat(),
            attempt_count,
        )
