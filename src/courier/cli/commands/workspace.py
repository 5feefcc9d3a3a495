"""Workspace credential commands."""

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
    success,
    warning,
)
from courier.errors import CourierError, NotFoundError, RefreshError
from courier.logging import get_redactor
from courier.scheduling import Credential


def register(app: typer.Typer) -> None:
    """Register the workspace command."""

    @app.command()
    def workspace(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: connect, show, refresh, channels, list"),
        ] = None,
        workspace_id: Annotated[
            str | None,
            typer.Option("--id", "-i", help="Workspace ID"),
        ] = None,
        token: Annotated[
            str | None,
            typer.Option("--token", help="Access token for connect"),
        ] = None,
        refresh_token: Annotated[
            str | None,
            typer.Option("--refresh-token", help="Refresh token for connect"),
        ] = None,
        expires_in: Annotated[
            int | None,
            typer.Option(
                "--expires-in",
                help="Seconds until the access token expires (omit if it never does)",
            ),
        ] = None,
        team_name: Annotated[
            str | None,
            typer.Option("--team-name", help="Display name for the workspace"),
        ] = None,
        verify: Annotated[
            bool,
            typer.Option("--verify", help="Check the token with auth.test first"),
        ] = False,
        config_path: Annotated[
            Path | None,
            typer.Option("--config", "-c", help="Path to configuration file"),
        ] = None,
    ) -> None:
        """Manage connected workspaces.

        Tokens come from the Slack OAuth install flow; connect stores them.

        Examples:
            courier workspace connect --id T123 --token xoxe.xoxb-... --expires-in 43200
            courier workspace show --id T123
            courier workspace refresh --id T123
            courier workspace channels --id T123
        """
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        if action == "list":
            asyncio.run(_workspace_list(config_path))
            return

        if action not in ("connect", "show", "refresh", "channels"):
            error(f"Unknown action: {action}")
            console.print("Valid actions: connect, show, refresh, channels, list")
            raise typer.Exit(1)

        if workspace_id is None:
            error("--id is required")
            raise typer.Exit(1)

        if action == "connect":
            if token is None:
                error("--token is required for connect")
                raise typer.Exit(1)
            asyncio.run(
                _workspace_connect(
                    config_path,
                    Credential(
                        workspace_id=workspace_id,
                        access_token=token,
                        refresh_token=refresh_token,
                        team_name=team_name,
                    ),
                    expires_in,
                    verify,
                )
            )

        elif action == "show":
            asyncio.run(_workspace_show(config_path, workspace_id))

        elif action == "refresh":
            asyncio.run(_workspace_refresh(config_path, workspace_id))

        elif action == "channels":
            asyncio.run(_workspace_channels(config_path, workspace_id))


def _now() -> int:
    return int(datetime.now(UTC).timestamp())


async def _workspace_connect(
    config_path: Path | None,
    credential: Credential,
    expires_in: int | None,
    verify: bool,
) -> None:
    from courier.cli.runtime import get_config, open_runtime

    if expires_in is not None:
        if expires_in <= 0:
            error("--expires-in must be positive")
            raise typer.Exit(1)
        credential.expires_at = _now() + expires_in

    async with open_runtime(get_config(config_path)) as runtime:
        if verify and not await runtime.slack.auth_test(credential.access_token):
            error("Slack rejected the access token")
            raise typer.Exit(1)
        await runtime.credentials.save(credential)

    success(f"Connected workspace {credential.workspace_id}")


async def _workspace_show(config_path: Path | None, workspace_id: str) -> None:
    from courier.cli.runtime import get_config, open_runtime

    async with open_runtime(get_config(config_path)) as runtime:
        credential = await runtime.credentials.get_by_owner(workspace_id)
        if credential is None:
            error(f"Workspace {workspace_id} is not connected")
            raise typer.Exit(1)
        counts = await runtime.messages.count_by_status(workspace_id)

    now = _now()
    if credential.expires_at is None:
        expiry = "never"
    elif credential.is_expired(now):
        expiry = f"[red]expired {format_countdown(credential.expires_at, now)}[/red]"
    else:
        expiry = format_countdown(credential.expires_at, now)

    redactor = get_redactor()
    console.print(f"[bold]Workspace:[/bold] {credential.workspace_id}")
    if credential.team_name:
        console.print(f"[bold]Team:[/bold] {escape(credential.team_name)}")
    console.print(
        f"[bold]Access token:[/bold] {redactor.redact(credential.access_token)}"
    )
    console.print(
        f"[bold]Refresh token:[/bold] {'yes' if credential.can_refresh else 'no'}"
    )
    console.print(f"[bold]Expires:[/bold] {expiry}")
    console.print(
        "[bold]Messages:[/bold] "
        + ", ".join(f"{status} {count}" for status, count in counts.items())
    )


async def _workspace_refresh(config_path: Path | None, workspace_id: str) -> None:
    from courier.cli.runtime import get_config, open_runtime

    async with open_runtime(get_config(config_path)) as runtime:
        try:
            credential = await runtime.scheduler.refresh_credential(workspace_id)
        except (NotFoundError, RefreshError) as e:
            error(str(e))
            raise typer.Exit(1) from None

    assert credential.expires_at is not None
    success(
        f"Refreshed workspace {workspace_id}; token expires "
        f"{format_countdown(credential.expires_at, _now())}"
    )


async def _workspace_channels(config_path: Path | None, workspace_id: str) -> None:
    from courier.cli.runtime import get_config, open_runtime

    async with open_runtime(get_config(config_path)) as runtime:
        credential = await runtime.credentials.get_by_owner(workspace_id)
        if credential is None:
            error(f"Workspace {workspace_id} is not connected")
            raise typer.Exit(1)
        if credential.is_expired(_now()):
            warning("Access token has expired")
            if credential.can_refresh:
                dim(f"Run: courier workspace refresh --id {workspace_id}")
            raise typer.Exit(1)
        try:
            channels = await runtime.slack.list_channels(credential.access_token)
        except CourierError as e:
            error(str(e))
            raise typer.Exit(1) from None

    if not channels:
        warning("No channels found")
        return

    table = create_table(
        f"Channels in {workspace_id}", [("ID", "dim"), ("Name", "cyan")]
    )
    for channel in channels:
        table.add_row(channel.id, channel.name)
    console.print(table)


async def _workspace_list(config_path: Path | None) -> None:
    from courier.cli.runtime import get_config, open_runtime

    async with open_runtime(get_config(config_path)) as runtime:
        workspace_ids = await runtime.credentials.list_workspaces()

    if not workspace_ids:
        warning("No workspaces connected")
        return
    for workspace_id in workspace_ids:
        console.print(workspace_id)
    dim(f"\nTotal: {len(workspace_ids)} workspace(s)")
