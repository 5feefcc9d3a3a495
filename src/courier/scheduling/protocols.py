"""Protocol definitions for the scheduling subsystem.

Defines the collaborator interfaces the scheduler depends on. SQL-backed
stores and the Slack client implement them in production; tests substitute
in-memory fakes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from courier.scheduling.types import (
        Credential,
        RefreshedToken,
        ScheduledMessage,
    )


@runtime_checkable
class MessageStore(Protocol):
    """Protocol for scheduled message storage."""

    async def list_due(self, now: int) -> list[ScheduledMessage]:
        """Pending messages with ``send_at <= now``, ordered by ``send_at``."""
        ...

    async def create(self, message: ScheduledMessage) -> str:
        """Insert a message and return its id."""
        ...

    async def get(self, message_id: str) -> ScheduledMessage | None:
        """Get a message by ID."""
        ...

    async def update_status(self, message_id: str, fields: dict[str, Any]) -> None:
        """Update status-related fields (status, retry_count, send_at).

        Raises:
            NotFoundError: If the message is missing or no longer pending.
        """
        ...

    async def delete_if_owned(self, message_id: str, owner_id: str) -> bool:
        """Delete a message if it belongs to ``owner_id``."""
        ...

    async def list_by_owner(self, owner_id: str) -> list[ScheduledMessage]:
        """All messages owned by a workspace, ordered by ``send_at``."""
        ...


@runtime_checkable
class CredentialStore(Protocol):
    """Protocol for workspace credential storage."""

    async def get_by_owner(self, owner_id: str) -> Credential | None:
        """Get the credential for a workspace."""
        ...

    async def update(self, owner_id: str, fields: dict[str, Any]) -> None:
        """Overwrite fields on an existing credential."""
        ...


@runtime_checkable
class TokenRefresher(Protocol):
    """Exchanges a refresh token for a new access token."""

    async def refresh(self, refresh_token: str) -> RefreshedToken:
        """Raises RefreshError on failure."""
        ...


@runtime_checkable
class DeliveryClient(Protocol):
    """Performs a single delivery attempt."""

    async def send(self, access_token: str, channel: str, text: str) -> None:
        """Raises DeliveryError on failure."""
        ...
