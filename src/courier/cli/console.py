"""Shared console utilities for CLI commands."""

from datetime import UTC, datetime

from rich.console import Console
from rich.markup import escape
from rich.table import Table

# Shared console instance for all CLI commands
console = Console()


def error(msg: str) -> None:
    """Print an error message in red."""
    console.print(f"[red]{escape(msg)}[/red]")


def warning(msg: str) -> None:
    """Print a warning message in yellow."""
    console.print(f"[yellow]{escape(msg)}[/yellow]")


def success(msg: str) -> None:
    """Print a success message in green."""
    console.print(f"[green]{escape(msg)}[/green]")


def dim(msg: str) -> None:
    """Print a dimmed message."""
    console.print(f"[dim]{escape(msg)}[/dim]")


def create_table(
    title: str,
    columns: list[tuple[str, str | dict]],
) -> Table:
    """Create a styled table with consistent formatting.

    Args:
        title: Table title.
        columns: List of (name, style) or (name, kwargs_dict) tuples.
    """
    table = Table(title=title)
    for name, style_or_kwargs in columns:
        if isinstance(style_or_kwargs, dict):
            table.add_column(name, **style_or_kwargs)
        else:
            table.add_column(name, style=style_or_kwargs)
    return table


def format_countdown(target: int, now: int | None = None) -> str:
    """Format an epoch timestamp relative to now ("in 5m", "3h ago")."""
    if now is None:
        now = int(datetime.now(UTC).timestamp())

    total_seconds = abs(target - now)
    if total_seconds < 60:
        text = f"{total_seconds}s"
    elif total_seconds < 3600:
        text = f"{total_seconds // 60}m"
    elif total_seconds < 86400:
        hours, rem = divmod(total_seconds, 3600)
        text = f"{hours}h {rem // 60}m" if rem >= 60 else f"{hours}h"
    else:
        days, rem = divmod(total_seconds, 86400)
        text = f"{days}d {rem // 3600}h" if rem >= 3600 else f"{days}d"

    return f"in {text}" if target >= now else f"{text} ago"


def format_timestamp(epoch: int) -> str:
    """Format an epoch timestamp as local time."""
    return datetime.fromtimestamp(epoch, UTC).astimezone().strftime("%Y-%m-%d %H:%M")
