"""RetryMetadataCodec — application properties <-> RetryMetadata.

All wire coercions live here. Property names and value formats are shared
with every other consumer of the same queues.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from .metadata import RetryMessage, RetryMetadata

if TYPE_CHECKING:
    from collections.abc import Callable

    from .policy import RetryPolicy
    from .ports import InboundMessage

logger = logging.getLogger("servicebus_retry.codec")

RETRY_ORIGINAL_ID = "x-retry-original-id"
RETRY_ATTEMPT = "x-retry-attempt"
RETRY_FIRST_ATTEMPT = "x-retry-first-attempt"
RETRY_LAST_ATTEMPT = "x-retry-last-attempt"
RETRY_MAX_ATTEMPTS = "x-retry-max-attempts"
RETRY_DELAY_INTERVALS = "x-retry-delay-intervals"

RETRY_PROPERTY_KEYS = (
    RETRY_ORIGINAL_ID,
    RETRY_ATTEMPT,
    RETRY_FIRST_ATTEMPT,
    RETRY_LAST_ATTEMPT,
    RETRY_MAX_ATTEMPTS,
    RETRY_DELAY_INTERVALS,
)

# Written only on clones scheduled from a topic subscription.
RETRY_TARGET_ENTITY = "x-retry-target-entity"


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render as ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_timestamp(raw: Any) -> datetime | None:
    """Parse an ISO-8601 string; naive values are read as UTC."""
    if isinstance(raw, datetime):
        parsed = raw
    else:
        try:
            parsed = datetime.fromisoformat(_text(raw).strip().replace("Z", "+00:00"))
        except (TypeError, ValueError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _text(raw: Any) -> str:
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw).decode("utf-8", errors="replace")
    return str(raw)


def _parse_int(raw: Any) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        number = raw
    else:
        try:
            number = float(_text(raw).strip())
        except ValueError:
            return None
    if not math.isfinite(number) or not number.is_integer():
        return None
    return int(number)


def _parse_delays(raw: Any) -> tuple[int, ...] | None:
    if raw is None:
        return None
    if isinstance(raw, (list, tuple)):
        items: Any = raw
    else:
        try:
            items = json.loads(_text(raw))
        except ValueError:
            return None
    if not isinstance(items, (list, tuple)) or not items:
        return None
    delays = [_parse_int(item) for item in items]
    if any(d is None or d < 0 for d in delays):
        return None
    return tuple(d for d in delays if d is not None)


def retry_target(message: Any) -> str | None:
    """Return the entity path a retry clone is addressed to, if any."""
    props = normalize_properties(getattr(message, "application_properties", None))
    target = props.get(RETRY_TARGET_ENTITY)
    return _text(target) if target else None


def normalize_properties(properties: Mapping[Any, Any] | None) -> dict[str, Any]:
    """Return a str-keyed copy; bytes keys and values are decoded as UTF-8.

    Azure's AMQP layer hands received application properties back as bytes.
    """
    if not properties:
        return {}
    normalized: dict[str, Any] = {}
    for key, value in properties.items():
        if isinstance(value, (bytes, bytearray)):
            try:
                value = bytes(value).decode("utf-8")
            except UnicodeDecodeError:
                value = bytes(value)
        normalized[_text(key)] = value
    return normalized


class RetryMetadataCodec:
    """Translate between a message's property bag and ``RetryMetadata``.

    Malformed embedded values never raise: each unparseable field falls back
    on its own to the policy value (or to zero / now for counters and times).
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or utc_now

    def extract(self, message: InboundMessage, policy: RetryPolicy) -> RetryMetadata:
        """Read retry metadata from ``message``, or start fresh metadata."""
        props = normalize_properties(getattr(message, "application_properties", None))
        now = self._clock()

        if props.get(RETRY_ORIGINAL_ID):
            attempt = _parse_int(props.get(RETRY_ATTEMPT))
            max_retries = _parse_int(props.get(RETRY_MAX_ATTEMPTS))
            delays = _parse_delays(props.get(RETRY_DELAY_INTERVALS))
            first = parse_timestamp(props.get(RETRY_FIRST_ATTEMPT))
            last = parse_timestamp(props.get(RETRY_LAST_ATTEMPT))
            if attempt is None or attempt < 0:
                logger.debug(
                    "Unreadable %s=%r; assuming 0",
                    RETRY_ATTEMPT,
                    props.get(RETRY_ATTEMPT),
                )
                attempt = 0
            return RetryMetadata(
                original_message_id=_text(props[RETRY_ORIGINAL_ID]),
                attempt_count=attempt,
                first_attempt_time=first or now,
                last_attempt_time=last or now,
                max_retries=max_retries
                if max_retries is not None and max_retries >= 1
                else policy.max_attempts,
                delay_intervals=delays if delays is not None else policy.delay_schedule,
            )

        message_id = getattr(message, "message_id", None)
        original_id = _text(message_id) if message_id else ""
        if not original_id:
            original_id = f"msg-{int(now.timestamp() * 1000)}"
        return RetryMetadata(
            original_message_id=original_id,
            attempt_count=0,
            first_attempt_time=now,
            last_attempt_time=now,
            max_retries=policy.max_attempts,
            delay_intervals=policy.delay_schedule,
        )

    def embed(
        self,
        metadata: RetryMetadata,
        attempt_count: int,
        message: InboundMessage,
        target_entity: str | None = None,
    ) -> RetryMessage:
        """Build the retry clone of ``message`` carrying ``attempt_count``.

        ``target_entity`` addresses the clone to one topic subscription; other
        subscriptions of the topic skip it. Without it any stale address is
        dropped.
        """
        properties = normalize_properties(
            getattr(message, "application_properties", None)
        )
        properties.update(
            {
                RETRY_ORIGINAL_ID: metadata.original_message_id,
                RETRY_ATTEMPT: attempt_count,
                RETRY_FIRST_ATTEMPT: format_timestamp(metadata.first_attempt_time),
                RETRY_LAST_ATTEMPT: format_timestamp(self._clock()),
                RETRY_MAX_ATTEMPTS: metadata.max_retries,
                RETRY_DELAY_INTERVALS: json.dumps(
                    list(metadata.delay_intervals), separators=(",", ":")
                ),
            }
        )
        if target_entity:
            properties[RETRY_TARGET_ENTITY] = target_entity
        else:
            properties.pop(RETRY_TARGET_ENTITY, None)
        return RetryMessage(
            message_id=f"{metadata.original_message_id}-retry-{attempt_count}",
            body=getattr(message, "body", None),
            content_type=getattr(message, "content_type", None),
            application_properties=properties,
        )
