"""Initial schema.

Revision ID: 001
Revises:
Create Date: 2026-10-18

Workspace credentials and scheduled messages.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # One row per connected workspace
    op.create_table(
        "credentials",
        sa.Column("workspace_id", sa.String(), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.Integer(), nullable=True),
        sa.Column("team_name", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("workspace_id"),
    )
    op.create_index("ix_credentials_expires_at", "credentials", ["expires_at"])

    # owner_id has no foreign key; messages may outlive their credential
    op.create_table(
        "scheduled_messages",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("channel", sa.String(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("send_at", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_scheduled_messages_owner_id", "scheduled_messages", ["owner_id"]
    )
    op.create_index(
        "ix_scheduled_messages_status_send_at",
        "scheduled_messages",
        ["status", "send_at"],
    )


def downgrade() -> None:
    op.drop_table("scheduled_messages")
    op.drop_table("credentials")
