"""Schedule management commands."""

import asyncio
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated

import click
import typer
from rich.markup import escape

from courier.cli.console import (
    console,
    create_table,
    dim,
    error,
    format_countdown,
    format_timestamp,
    success,
    warning,
)
from courier.errors import (
    DeliveryError,
    InvalidArgumentError,
    NotFoundError,
    TokenExpiredError,
)
from courier.scheduling import MessageStatus

_STATUS_STYLES = {
    MessageStatus.PENDING: "yellow",
    MessageStatus.SENT: "green",
    MessageStatus.FAILED: "red",
}


def parse_send_time(at: str | None, delay: int | None, now: int) -> int:
    """Resolve --at/--in into an epoch timestamp.

    ``at`` is ISO 8601; a value without an offset is read as local time.
    """
    if (at is None) == (delay is None):
        raise InvalidArgumentError("Exactly one of --at or --in is required")
    if delay is not None:
        return now + delay
    assert at is not None
    try:
        parsed = datetime.fromisoformat(at)
    except ValueError as e:
        raise InvalidArgumentError(f"Invalid --at time: {at}") from e
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return int(parsed.timestamp())


def register(app: typer.Typer) -> None:
    """Register the schedule command."""

    @app.command()
    def schedule(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: list, add, send, cancel"),
        ] = None,
        workspace: Annotated[
            str | None,
            typer.Option("--workspace", "-w", help="Workspace (owner) ID"),
        ] = None,
        channel: Annotated[
            str | None,
            typer.Option("--channel", help="Channel ID to deliver to"),
        ] = None,
        text: Annotated[
            str | None,
            typer.Option("--text", "-t", help="Message text"),
        ] = None,
        at: Annotated[
            str | None,
            typer.Option("--at", help="Send time (ISO 8601)"),
        ] = None,
        delay: Annotated[
            int | None,
            typer.Option("--in", help="Send after this many seconds"),
        ] = None,
        message_id: Annotated[
            str | None,
            typer.Option("--id", "-i", help="Message ID for cancel"),
        ] = None,
        config_path: Annotated[
            Path | None,
            typer.Option("--config", "-c", help="Path to configuration file"),
        ] = None,
    ) -> None:
        """Send, schedule and manage messages.

        Examples:
            courier schedule list --workspace T123
            courier schedule add -w T123 --channel C456 --text "hi" --in 3600
            courier schedule send -w T123 --channel C456 --text "deploy done"
            courier schedule cancel -w T123 --id 3f2a9c0b71de
        """
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        if action not in ("list", "add", "send", "cancel"):
            error(f"Unknown action: {action}")
            console.print("Valid actions: list, add, send, cancel")
            raise typer.Exit(1)

        if workspace is None:
            error("--workspace is required")
            raise typer.Exit(1)

        if action == "list":
            asyncio.run(_schedule_list(config_path, workspace))

        elif action in ("add", "send"):
            if channel is None or text is None:
                error(f"--channel and --text are required for {action}")
                raise typer.Exit(1)
            if action == "add":
                asyncio.run(
                    _schedule_add(config_path, workspace, channel, text, at, delay)
                )
            else:
                asyncio.run(_schedule_send(config_path, workspace, channel, text))

        elif action == "cancel":
            if message_id is None:
                error("--id is required for cancel")
                raise typer.Exit(1)
            asyncio.run(_schedule_cancel(config_path, workspace, message_id))


async def _schedule_list(config_path: Path | None, workspace: str) -> None:
    from courier.cli.runtime import get_config, open_runtime

    async with open_runtime(get_config(config_path)) as runtime:
        messages = await runtime.scheduler.list_by_owner(workspace)

    if not messages:
        warning("No scheduled messages found")
        return

    table = create_table(
        f"Scheduled messages for {workspace}",
        [
            ("ID", "dim"),
            ("Channel", "cyan"),
            ("Message", ""),
            ("Send At", ""),
            ("Status", {}),
            ("Retries", {"justify": "right"}),
        ],
    )
    now = int(datetime.now(UTC).timestamp())
    for message in messages:
        preview = message.text[:40] + "..." if len(message.text) > 40 else message.text
        when = format_timestamp(message.send_at)
        if message.is_pending:
            when = f"{when} ({format_countdown(message.send_at, now)})"
        style = _STATUS_STYLES[message.status]
        table.add_row(
            message.id,
            message.channel,
            escape(preview),
            when,
            f"[{style}]{message.status.value}[/{style}]",
            str(message.retry_count),
        )

    console.print(table)
    dim(f"\nTotal: {len(messages)} message(s)")


async def _schedule_add(
    config_path: Path | None,
    workspace: str,
    channel: str,
    text: str,
    at: str | None,
    delay: int | None,
) -> None:
    from courier.cli.runtime import get_config, open_runtime

    config = get_config(config_path)
    async with open_runtime(config) as runtime:
        now = int(datetime.now(UTC).timestamp())
        try:
            send_at = parse_send_time(at, delay, now)
            message_id = await runtime.scheduler.schedule(
                workspace, channel, text, send_at
            )
        except InvalidArgumentError as e:
            error(str(e))
            raise typer.Exit(1) from None

    success(f"Scheduled message {message_id} for {format_timestamp(send_at)}")


async def _schedule_cancel(
    config_path: Path | None, workspace: str, message_id: str
) -> None:
    from courier.cli.runtime import get_config, open_runtime

    async with open_runtime(get_config(config_path)) as runtime:
        try:
            await runtime.scheduler.cancel(message_id, workspace)
        except NotFoundError as e:
            error(str(e))
            raise typer.Exit(1) from None

    success(f"Cancelled message {message_id}")


async def _schedule_send(
    config_path: Path | None, workspace: str, channel: str, text: str
) -> None:
    from courier.cli.runtime import get_config, open_runtime

    async with open_runtime(get_config(config_path)) as runtime:
        try:
            await runtime.scheduler.send_now(workspace, channel, text)
        except (
            InvalidArgumentError,
            NotFoundError,
            TokenExpiredError,
            DeliveryError,
        ) as e:
            error(str(e))
            if isinstance(e, TokenExpiredError) and e.refreshable:
                dim(f"Run: courier workspace refresh --id {workspace}")
            raise typer.Exit(1) from None

    success(f"Sent message to {channel}")
