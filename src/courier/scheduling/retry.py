"""Retry policy for scheduled deliveries.

The policy is a small state machine over ``(status, retry_count)``:

- Delivered: ``pending -> sent``, retry count unchanged.
- Delivery failed with budget left: stay ``pending``, count + 1, rescheduled
  ``retry_delay`` seconds from now (fixed delay, not exponential).
- Delivery failed with budget exhausted: ``pending -> failed``, count kept.
- Missing credential: ``pending -> failed``, count unchanged.
- Expired credential that cannot be refreshed, or a failed refresh:
  ``pending -> failed``, count + 1.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from courier.scheduling.types import MessageStatus


class Outcome(Enum):
    """Result of one processing attempt for a message."""

    DELIVERED = "delivered"
    DELIVERY_FAILED = "delivery_failed"
    NO_CREDENTIAL = "no_credential"
    NO_REFRESH_TOKEN = "no_refresh_token"
    REFRESH_FAILED = "refresh_failed"


@dataclass
class RetryPolicy:
    """Configuration for retry behavior."""

    max_retries: int = 3
    retry_delay: int = 300  # 5 minutes


@dataclass(frozen=True)
class Transition:
    """State a message moves to after an attempt."""

    status: MessageStatus
    retry_count: int
    send_at: int | None = None  # Set only when rescheduled

    @property
    def rescheduled(self) -> bool:
        return self.status == MessageStatus.PENDING

    def as_fields(self) -> dict[str, Any]:
        """Fields to write back to the message store."""
        fields: dict[str, Any] = {
            "status": self.status,
            "retry_count": self.retry_count,
        }
        if self.send_at is not None:
            fields["send_at"] = self.send_at
        return fields


def next_state(
    status: MessageStatus,
    retry_count: int,
    outcome: Outcome,
    now: int,
    policy: RetryPolicy | None = None,
) -> Transition:
    """Compute the next state for a message after an attempt.

    Args:
        status: Current status. Must be pending.
        retry_count: Failed attempts so far.
        outcome: What happened during this attempt.
        now: Current time (epoch seconds).
        policy: Retry configuration.

    Returns:
        The transition to apply.

    Raises:
        ValueError: If the message is already in a terminal state.
    """
    policy = policy or RetryPolicy()

    if status.is_terminal:
        raise ValueError(f"Cannot transition out of terminal status '{status}'")

    if outcome is Outcome.DELIVERED:
        return Transition(MessageStatus.SENT, retry_count)

    if outcome is Outcome.NO_CREDENTIAL:
        return Transition(MessageStatus.FAILED, retry_count)

    if outcome in (Outcome.NO_REFRESH_TOKEN, Outcome.REFRESH_FAILED):
        return Transition(MessageStatus.FAILED, retry_count + 1)

    # Delivery failure: bounded retry with a fixed delay
    if retry_count < policy.max_retries:
        return Transition(
            MessageStatus.PENDING,
            retry_count + 1,
            send_at=now + policy.retry_delay,
        )
    return Transition(MessageStatus.FAILED, retry_count)
