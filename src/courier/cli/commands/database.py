"""Database management commands."""

from __future__ import annotations

import asyncio
import os
import subprocess
import sys
from pathlib import Path
from typing import Annotated

import typer

from courier.cli.console import console, error, success

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to configuration file"),
]


def _alembic(config_path: Path | None, *args: str) -> int:
    """Run an alembic command against the configured database."""
    from courier.cli.runtime import get_config

    config = get_config(config_path)
    env = dict(os.environ)
    if config.database.url:
        env["COURIER_DATABASE_URL"] = config.database.url
    else:
        path = config.database.path
        path.parent.mkdir(parents=True, exist_ok=True)
        env["COURIER_DATABASE_URL"] = f"sqlite+aiosqlite:///{path}"

    result = subprocess.run(
        [sys.executable, "-m", "alembic", *args],
        capture_output=False,
        env=env,
    )
    return result.returncode


def register(app: typer.Typer) -> None:
    """Register the db command group."""
    db_app = typer.Typer(help="Database management commands")

    @db_app.command("migrate")
    def db_migrate(
        revision: Annotated[
            str,
            typer.Option(
                "--revision",
                "-r",
                help="Target revision",
            ),
        ] = "head",
        config_path: ConfigOption = None,
    ) -> None:
        """Run database migrations."""
        console.print(f"[bold]Running migrations to {revision}...[/bold]")
        if _alembic(config_path, "upgrade", revision) == 0:
            success("Migrations completed successfully")
        else:
            error("Migration failed")
            raise typer.Exit(1)

    @db_app.command("rollback")
    def db_rollback(
        revision: Annotated[
            str,
            typer.Option(
                "--revision",
                "-r",
                help="Target revision",
            ),
        ] = "-1",
        config_path: ConfigOption = None,
    ) -> None:
        """Rollback database migrations."""
        console.print(f"[bold]Rolling back to {revision}...[/bold]")
        if _alembic(config_path, "downgrade", revision) == 0:
            success("Rollback completed successfully")
        else:
            error("Rollback failed")
            raise typer.Exit(1)

    @db_app.command("init")
    def db_init(
        stamp: Annotated[
            bool,
            typer.Option(
                "--stamp/--no-stamp",
                help="Mark the new schema as migrated to head",
            ),
        ] = True,
        config_path: ConfigOption = None,
    ) -> None:
        """Create missing tables directly from the models."""
        from courier.cli.runtime import create_database, get_config

        config = get_config(config_path)

        async def create() -> str:
            database = create_database(config)
            await database.connect()
            try:
                await database.create_tables()
            finally:
                await database.disconnect()
            return database.url

        url = asyncio.run(create())
        success(f"Database ready at {url}")

        if stamp and _alembic(config_path, "stamp", "head") != 0:
            error("Failed to stamp migration version")
            raise typer.Exit(1)

    app.add_typer(db_app, name="db")
