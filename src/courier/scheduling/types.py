"""Scheduling types.

Public types:
- MessageStatus: Lifecycle status of a scheduled message
- ScheduledMessage: An outbound message and its delivery state
- Credential: Access/refresh tokens for a connected workspace

Scheduling timestamps (send_at, expires_at) are integer Unix epoch seconds;
created_at/updated_at are bookkeeping datetimes set by the store.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any


class MessageStatus(StrEnum):
    """Allowed message statuses. ``sent`` and ``failed`` are terminal."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not MessageStatus.PENDING


@dataclass
class ScheduledMessage:
    """A message waiting for (or done with) delivery."""

    id: str
    owner_id: str
    channel: str
    text: str
    send_at: int
    status: MessageStatus = MessageStatus.PENDING
    retry_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == MessageStatus.PENDING

    def is_due(self, now: int) -> bool:
        return self.is_pending and self.send_at <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "channel": self.channel,
            "text": self.text,
            "send_at": self.send_at,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class Credential:
    """OAuth credentials for one connected workspace."""

    workspace_id: str
    access_token: str
    refresh_token: str | None = None
    expires_at: int | None = None  # None = never expires
    team_name: str | None = None

    def is_expired(self, now: int) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)


@dataclass(frozen=True)
class RefreshedToken:
    """Result of a successful token refresh."""

    access_token: str
    expires_in: int
    # Present only when the provider rotates refresh tokens
    refresh_token: str | None = None


def new_message_id() -> str:
    """Generate a short random message identifier."""
    return uuid.uuid4().hex[:12]
