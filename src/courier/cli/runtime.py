"""Shared runtime bootstrap helpers for CLI entrypoints."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import typer

from courier.cli.console import error
from courier.config import ConfigError, CourierConfig, load_config
from courier.db import Database
from courier.scheduling import (
    MessageScheduler,
    RetryPolicy,
    SqlCredentialStore,
    SqlMessageStore,
)
from courier.slack import SlackClient, SlackTokenRefresher


@dataclass(slots=True)
class Runtime:
    """Composed runtime dependencies for CLI command handlers."""

    config: CourierConfig
    database: Database
    messages: SqlMessageStore
    credentials: SqlCredentialStore
    slack: SlackClient
    scheduler: MessageScheduler


def get_config(config_path: Path | None = None) -> CourierConfig:
    """Load configuration, exiting with an error message if it is invalid."""
    try:
        return load_config(config_path)
    except (FileNotFoundError, ConfigError) as e:
        error(str(e))
        raise typer.Exit(1) from None


def create_database(config: CourierConfig) -> Database:
    return Database(
        database_url=config.database.url,
        database_path=config.database.path,
    )


def create_refresher(config: CourierConfig) -> SlackTokenRefresher:
    # Without app credentials every refresh fails with RefreshError
    credentials = config.resolve_slack_credentials()
    if credentials is None:
        client_id, client_secret = "", ""
    else:
        client_id, client_secret = (
            credentials[0],
            credentials[1].get_secret_value(),
        )
    return SlackTokenRefresher(
        client_id,
        client_secret,
        api_url=config.slack.api_url,
        timeout=config.slack.timeout,
    )


def create_scheduler(
    config: CourierConfig,
    messages: SqlMessageStore,
    credentials: SqlCredentialStore,
    slack: SlackClient,
) -> MessageScheduler:
    scheduler_config = config.scheduler
    return MessageScheduler(
        messages=messages,
        credentials=credentials,
        refresher=create_refresher(config),
        delivery=slack,
        poll_interval=scheduler_config.poll_interval,
        max_workers=scheduler_config.max_workers,
        request_timeout=scheduler_config.request_timeout,
        policy=RetryPolicy(
            max_retries=scheduler_config.max_retries,
            retry_delay=scheduler_config.retry_delay,
        ),
    )


@asynccontextmanager
async def open_runtime(config: CourierConfig) -> AsyncIterator[Runtime]:
    """Connect the database and wire stores, Slack client and scheduler.

    Missing tables are created. The scheduler is constructed but not started.
    """
    database = create_database(config)
    await database.connect()
    try:
        await database.create_tables()
        messages = SqlMessageStore(database)
        credentials = SqlCredentialStore(database)
        slack = SlackClient(api_url=config.slack.api_url, timeout=config.slack.timeout)
        yield Runtime(
            config=config,
            database=database,
            messages=messages,
            credentials=credentials,
            slack=slack,
            scheduler=create_scheduler(config, messages, credentials, slack),
        )
    finally:
        await database.disconnect()
