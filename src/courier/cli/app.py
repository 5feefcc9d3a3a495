"""Main CLI application."""

from typing import Annotated

import typer

from courier import __version__
from courier.cli.commands import database, schedule, serve, workspace

app = typer.Typer(
    name="courier",
    help="Courier - scheduled Slack message delivery",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"courier {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """Courier - scheduled Slack message delivery."""


serve.register(app)
schedule.register(app)
workspace.register(app)
database.register(app)


if __name__ == "__main__":
    app()
