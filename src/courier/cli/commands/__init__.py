"""CLI command modules."""

from courier.cli.commands import database, schedule, serve, workspace

__all__ = [
    "database",
    "schedule",
    "serve",
    "workspace",
]
