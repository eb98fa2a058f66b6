"""Typed retry records — metadata carried by a message and the outbound clone."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RetryMetadata(BaseModel):
    """Retry bookkeeping embedded in a message's application properties.

    ``max_retries`` and ``delay_intervals`` are copied from the policy on the
    first failure and carried unchanged on every clone. The receiver's current
    policy still decides when the budget is exhausted.
    """

    model_config = ConfigDict(frozen=True)

    original_message_id: str
    attempt_count: int = Field(
        default=0, ge=0, description="Failed attempts completed so far"
    )
    first_attempt_time: datetime
    last_attempt_time: datetime
    max_retries: int
    delay_intervals: tuple[int, ...]


class RetryMessage(BaseModel):
    """Broker-neutral outbound message scheduled for a retry."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    message_id: str
    body: Any = None
    content_type: str | None = None
    application_properties: dict[str, Any] = Field(default_factory=dict)
