"""Server command for running the delivery scheduler."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    """Register the serve command."""

    @app.command()
    def serve(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
    ) -> None:
        """Run the scheduler until interrupted."""
        try:
            asyncio.run(_run_server(config))
        except KeyboardInterrupt:
            # Use print here since logging may not be configured yet
            print("\nServer stopped")


async def _run_server(config_path: Path | None = None) -> None:
    import signal as signal_module

    from courier.cli.runtime import get_config, open_runtime
    from courier.logging import configure_logging

    config = get_config(config_path)
    configure_logging(level=config.log_level, use_rich=True, log_to_file=True)

    if config.resolve_slack_credentials() is None:
        logger.warning(
            "Slack client_id/client_secret not configured; "
            "expired tokens will fail permanently"
        )

    async with open_runtime(config) as runtime:
        shutdown_event = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal_module.SIGTERM, signal_module.SIGINT):
            loop.add_signal_handler(sig, shutdown_event.set)

        logger.info(f"Using database {runtime.database.url}")
        await runtime.scheduler.start()
        try:
            await shutdown_event.wait()
        finally:
            logger.info("Shutting down")
            await runtime.scheduler.stop()
            for sig in (signal_module.SIGTERM, signal_module.SIGINT):
                loop.remove_signal_handler(sig)
