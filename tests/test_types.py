"""Tests for scheduling types."""

from datetime import UTC, datetime

from courier.scheduling.types import (
    Credential,
    MessageStatus,
    ScheduledMessage,
    new_message_id,
)

NOW = 1_700_000_000


class TestMessageStatus:
    def test_terminal_statuses(self):
        assert not MessageStatus.PENDING.is_terminal
        assert MessageStatus.SENT.is_terminal
        assert MessageStatus.FAILED.is_terminal

    def test_values_are_strings(self):
        assert MessageStatus("pending") is MessageStatus.PENDING
        assert MessageStatus.SENT == "sent"


class TestScheduledMessage:
    def test_is_due(self):
        message = ScheduledMessage("m1", "T1", "C1", "hi", send_at=NOW)
        assert message.is_due(NOW)
        assert message.is_due(NOW + 1)
        assert not message.is_due(NOW - 1)

    def test_terminal_message_is_never_due(self):
        message = ScheduledMessage(
            "m1", "T1", "C1", "hi", send_at=NOW - 100, status=MessageStatus.SENT
        )
        assert not message.is_due(NOW)

    def test_to_dict(self):
        created = datetime(2026, 1, 1, tzinfo=UTC)
        message = ScheduledMessage(
            "m1", "T1", "C1", "hi", send_at=NOW, retry_count=2, created_at=created
        )
        assert message.to_dict() == {
            "id": "m1",
            "owner_id": "T1",
            "channel": "C1",
            "text": "hi",
            "send_at": NOW,
            "status": "pending",
            "retry_count": 2,
            "created_at": "2026-01-01T00:00:00+00:00",
            "updated_at": None,
        }


class TestCredential:
    def test_never_expires_without_expires_at(self):
        assert not Credential("T1", "xoxb").is_expired(NOW)

    def test_expired_at_boundary(self):
        credential = Credential("T1", "xoxb", expires_at=NOW)
        assert credential.is_expired(NOW)
        assert not credential.is_expired(NOW - 1)

    def test_can_refresh(self):
        assert Credential("T1", "xoxb", refresh_token="xoxe-1-r").can_refresh
        assert not Credential("T1", "xoxb", refresh_token="").can_refresh
        assert not Credential("T1", "xoxb").can_refresh


def test_new_message_id_is_short_hex():
    ids = {new_message_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(len(i) == 12 and int(i, 16) >= 0 for i in ids)
