"""SQL-backed message and credential stores.

Each operation runs in its own short session so no transaction is held open
across network calls made by the scheduler.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, func, select, update

from courier.db.engine import Database
from courier.db.models import CredentialRecord, ScheduledMessageRecord
from courier.errors import NotFoundError
from courier.scheduling.types import (
    Credential,
    MessageStatus,
    ScheduledMessage,
    new_message_id,
)

logger = logging.getLogger(__name__)

MESSAGE_UPDATE_FIELDS = frozenset({"status", "retry_count", "send_at"})
CREDENTIAL_UPDATE_FIELDS = frozenset(
    {"access_token", "refresh_token", "expires_at", "team_name"}
)


class SqlMessageStore:
    """Scheduled message storage on the ``scheduled_messages`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def list_due(self, now: int) -> list[ScheduledMessage]:
        async with self._db.session() as session:
            result = await session.execute(
                select(ScheduledMessageRecord)
                .where(
                    ScheduledMessageRecord.status == MessageStatus.PENDING.value,
                    ScheduledMessageRecord.send_at <= now,
                )
                .order_by(ScheduledMessageRecord.send_at, ScheduledMessageRecord.id)
            )
            return [_to_message(row) for row in result.scalars()]

    async def get(self, message_id: str) -> ScheduledMessage | None:
        async with self._db.session() as session:
            row = await session.get(ScheduledMessageRecord, message_id)
            return _to_message(row) if row else None

    async def list_by_owner(self, owner_id: str) -> list[ScheduledMessage]:
        async with self._db.session() as session:
            result = await session.execute(
                select(ScheduledMessageRecord)
                .where(ScheduledMessageRecord.owner_id == owner_id)
                .order_by(ScheduledMessageRecord.send_at, ScheduledMessageRecord.id)
            )
            return [_to_message(row) for row in result.scalars()]

    async def count_by_status(self, owner_id: str | None = None) -> dict[str, int]:
        stmt = select(
            ScheduledMessageRecord.status, func.count(ScheduledMessageRecord.id)
        ).group_by(ScheduledMessageRecord.status)
        if owner_id is not None:
            stmt = stmt.where(ScheduledMessageRecord.owner_id == owner_id)
        async with self._db.session() as session:
            result = await session.execute(stmt)
            counts = {status.value: 0 for status in MessageStatus}
            for status, count in result.all():
                counts[status] = count
            return counts

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    async def create(self, message: ScheduledMessage) -> str:
        if not message.id:
            message.id = new_message_id()
        async with self._db.session() as session:
            session.add(
                ScheduledMessageRecord(
                    id=message.id,
                    owner_id=message.owner_id,
                    channel=message.channel,
                    text=message.text,
                    send_at=message.send_at,
                    status=message.status.value,
                    retry_count=message.retry_count,
                )
            )
        return message.id

    async def update_status(self, message_id: str, fields: dict[str, Any]) -> None:
        unknown = set(fields) - MESSAGE_UPDATE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update message fields: {sorted(unknown)}")
        values = dict(fields)
        if "status" in values:
            values["status"] = MessageStatus(values["status"]).value

        async with self._db.session() as session:
            result = await session.execute(
                update(ScheduledMessageRecord)
                .where(
                    ScheduledMessageRecord.id == message_id,
                    # Terminal rows are never rewritten, even by another process
                    ScheduledMessageRecord.status == MessageStatus.PENDING.value,
                )
                .values(**values)
            )
            if result.rowcount == 0:
                raise NotFoundError(
                    f"Scheduled message {message_id} not found or no longer pending"
                )

    async def delete_if_owned(self, message_id: str, owner_id: str) -> bool:
        async with self._db.session() as session:
            result = await session.execute(
                delete(ScheduledMessageRecord).where(
                    ScheduledMessageRecord.id == message_id,
                    ScheduledMessageRecord.owner_id == owner_id,
                )
            )
            return result.rowcount > 0


class SqlCredentialStore:
    """Workspace credential storage on the ``credentials`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def get_by_owner(self, owner_id: str) -> Credential | None:
        async with self._db.session() as session:
            row = await session.get(CredentialRecord, owner_id)
            return _to_credential(row) if row else None

    async def list_workspaces(self) -> list[str]:
        async with self._db.session() as session:
            result = await session.execute(
                select(CredentialRecord.workspace_id).order_by(
                    CredentialRecord.workspace_id
                )
            )
            return list(result.scalars())

    async def update(self, owner_id: str, fields: dict[str, Any]) -> None:
        unknown = set(fields) - CREDENTIAL_UPDATE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update credential fields: {sorted(unknown)}")

        async with self._db.session() as session:
            result = await session.execute(
                update(CredentialRecord)
                .where(CredentialRecord.workspace_id == owner_id)
                .values(**fields)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"No credential for workspace {owner_id}")

    async def save(self, credential: Credential) -> None:
        """Insert or overwrite the credential for a workspace."""
        async with self._db.session() as session:
            row = await session.get(CredentialRecord, credential.workspace_id)
            if row is None:
                session.add(
                    CredentialRecord(
                        workspace_id=credential.workspace_id,
                        access_token=credential.access_token,
                        refresh_token=credential.refresh_token,
                        expires_at=credential.expires_at,
                        team_name=credential.team_name,
                    )
                )
                logger.info(
                    "workspace_connected",
                    extra={"workspace.id": credential.workspace_id},
                )
            else:
                row.access_token = credential.access_token
                row.refresh_token = credential.refresh_token
                row.expires_at = credential.expires_at
                if credential.team_name is not None:
                    row.team_name = credential.team_name


def _to_message(row: ScheduledMessageRecord) -> ScheduledMessage:
    return ScheduledMessage(
        id=row.id,
        owner_id=row.owner_id,
        channel=row.channel,
        text=row.text,
        send_at=row.send_at,
        status=MessageStatus(row.status),
        retry_count=row.retry_count,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_credential(row: CredentialRecord) -> Credential:
    return Credential(
        workspace_id=row.workspace_id,
        access_token=row.access_token,
        refresh_token=row.refresh_token,
        expires_at=row.expires_at,
        team_name=row.team_name,
    )
