"""RetryPolicy — attempt budget and configured delay schedule."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RetryPolicy(BaseModel):
    """Immutable retry budget supplied at wiring time.

    ``delay_schedule[i]`` is the wait in milliseconds before attempt ``i + 2``.
    Attempts past the end of the schedule reuse the last entry.
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(
        ..., ge=1, description="Total delivery attempts, including the first"
    )
    delay_schedule: tuple[int, ...] = Field(
        ..., min_length=1, description="Delays in milliseconds between attempts"
    )

    @field_validator("delay_schedule")
    @classmethod
    def _non_negative(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if any(d < 0 for d in value):
            raise ValueError("delay_schedule entries must be >= 0")
        return value

    def is_exhausted(self, current_attempt: int) -> bool:
        """Return True if failed attempt ``current_attempt`` (1-based) was the last allowed.

        Uses ``>=`` so a scheduled clone never carries
        ``attempt_count >= max_attempts``; ``M`` failures mean ``M`` deliveries.
        """
        return current_attempt >= self.max_attempts

    def delay_for_attempt(self, current_attempt: int) -> int:
        """Return the delay in milliseconds applied after ``current_attempt`` fails."""
        index = min(max(current_attempt - 1, 0), len(self.delay_schedule) - 1)
        return self.delay_schedule[index]
