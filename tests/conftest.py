"""Shared test fixtures and factories."""

import asyncio
from collections.abc import AsyncGenerator, Generator
from dataclasses import replace
from pathlib import Path
from typing import Any

import pytest

from courier.db.engine import Database
from courier.errors import NotFoundError
from courier.scheduling import (
    Credential,
    MessageScheduler,
    MessageStatus,
    RefreshedToken,
    ScheduledMessage,
    SqlCredentialStore,
    SqlMessageStore,
)
from courier.scheduling.types import new_message_id

NOW = 1_700_000_000


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, now: float = NOW):
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# In-memory collaborators
# =============================================================================


class InMemoryMessageStore:
    """Dict-backed message store. Returns copies like a real database would."""

    def __init__(self) -> None:
        self.messages: dict[str, ScheduledMessage] = {}
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.fail_list_due = False
        self.fail_update = False

    def add(self, **kwargs: Any) -> ScheduledMessage:
        kwargs.setdefault("id", new_message_id())
        kwargs.setdefault("owner_id", "T1")
        kwargs.setdefault("channel", "C1")
        kwargs.setdefault("text", "hello")
        kwargs.setdefault("send_at", NOW - 1)
        message = ScheduledMessage(**kwargs)
        self.messages[message.id] = message
        return replace(message)

    async def list_due(self, now: int) -> list[ScheduledMessage]:
        if self.fail_list_due:
            raise ConnectionError("database unavailable")
        due = [replace(m) for m in self.messages.values() if m.is_due(now)]
        return sorted(due, key=lambda m: (m.send_at, m.id))

    async def create(self, message: ScheduledMessage) -> str:
        self.messages[message.id] = replace(message)
        return message.id

    async def get(self, message_id: str) -> ScheduledMessage | None:
        message = self.messages.get(message_id)
        return replace(message) if message else None

    async def update_status(self, message_id: str, fields: dict[str, Any]) -> None:
        if self.fail_update:
            raise ConnectionError("database unavailable")
        message = self.messages.get(message_id)
        if message is None or not message.is_pending:
            raise NotFoundError(message_id)
        self.updates.append((message_id, dict(fields)))
        for key, value in fields.items():
            if key == "status":
                value = MessageStatus(value)
            setattr(message, key, value)

    async def delete_if_owned(self, message_id: str, owner_id: str) -> bool:
        message = self.messages.get(message_id)
        if message is None or message.owner_id != owner_id:
            return False
        del self.messages[message_id]
        return True

    async def list_by_owner(self, owner_id: str) -> list[ScheduledMessage]:
        owned = [replace(m) for m in self.messages.values() if m.owner_id == owner_id]
        return sorted(owned, key=lambda m: (m.send_at, m.id))


class InMemoryCredentialStore:
    """Dict-backed credential store recording every update."""

    def __init__(self) -> None:
        self.credentials: dict[str, Credential] = {}
        self.updates: list[tuple[str, dict[str, Any]]] = []
        # Number of upcoming update calls that fail
        self.failing_updates = 0

    def add(self, **kwargs: Any) -> Credential:
        kwargs.setdefault("workspace_id", "T1")
        kwargs.setdefault("access_token", "xoxe.xoxb-current")
        credential = Credential(**kwargs)
        self.credentials[credential.workspace_id] = credential
        return replace(credential)

    async def get_by_owner(self, owner_id: str) -> Credential | None:
        credential = self.credentials.get(owner_id)
        return replace(credential) if credential else None

    async def update(self, owner_id: str, fields: dict[str, Any]) -> None:
        if self.failing_updates:
            self.failing_updates -= 1
            raise ConnectionError("database unavailable")
        if owner_id not in self.credentials:
            raise NotFoundError(owner_id)
        self.updates.append((owner_id, dict(fields)))
        credential = self.credentials[owner_id]
        for key, value in fields.items():
            setattr(credential, key, value)


class RecordingRefresher:
    """Token refresher that records calls and returns a fixed token."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.token = RefreshedToken(access_token="xoxe.xoxb-refreshed", expires_in=43200)
        self.error: Exception | None = None
        self.delay = 0.0

    async def refresh(self, refresh_token: str) -> RefreshedToken:
        self.calls.append(refresh_token)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.token


class RecordingDelivery:
    """Delivery client that records attempts and successful sends."""

    def __init__(self) -> None:
        self.attempts: list[tuple[str, str, str]] = []
        self.sent: list[tuple[str, str, str]] = []
        self.error: Exception | None = None
        self.delay = 0.0

    async def send(self, access_token: str, channel: str, text: str) -> None:
        self.attempts.append((access_token, channel, text))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.sent.append((access_token, channel, text))


@pytest.fixture
def message_store() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def refresher() -> RecordingRefresher:
    return RecordingRefresher()


@pytest.fixture
def delivery() -> RecordingDelivery:
    return RecordingDelivery()


@pytest.fixture
def scheduler(
    message_store: InMemoryMessageStore,
    credential_store: InMemoryCredentialStore,
    refresher: RecordingRefresher,
    delivery: RecordingDelivery,
    clock: FakeClock,
) -> MessageScheduler:
    """Scheduler wired to in-memory fakes and a fixed clock."""
    return MessageScheduler(
        messages=message_store,
        credentials=credential_store,
        refresher=refresher,
        delivery=delivery,
        poll_interval=0.01,
        request_timeout=0.5,
        clock=clock,
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """Create a temporary test database."""
    db = Database(database_path=tmp_path / "test.db")
    await db.connect()
    await db.create_tables()

    yield db

    await db.disconnect()


@pytest.fixture
def sql_message_store(database: Database) -> SqlMessageStore:
    return SqlMessageStore(database)


@pytest.fixture
def sql_credential_store(database: Database) -> SqlCredentialStore:
    return SqlCredentialStore(database)


# =============================================================================
# CLI and Config Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})


@pytest.fixture(autouse=True)
def isolated_home(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Point COURIER_HOME at a temp dir and clear env overrides."""
    from courier.config.paths import get_courier_home

    home = tmp_path / "courier-home"
    monkeypatch.setenv("COURIER_HOME", str(home))
    for var in (
        "SLACK_CLIENT_ID",
        "SLACK_CLIENT_SECRET",
        "COURIER_DATABASE_URL",
        "COURIER_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    get_courier_home.cache_clear()
    yield home
    get_courier_home.cache_clear()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Config file pointing the database at a temp path."""
    path = tmp_path / "courier.toml"
    db_path = tmp_path / "cli.db"
    path.write_text(
        f"""
log_level = "debug"

[slack]
client_id = "1234.5678"
client_secret = "test-secret-value"

[scheduler]
poll_interval = 30
max_workers = 2

[database]
path = "{db_path.as_posix()}"
"""
    )
    return path
