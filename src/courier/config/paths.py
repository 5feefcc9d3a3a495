"""Centralized path management for Courier.

All state (config, database, logs) is stored under a single base directory.
The base directory can be overridden with the COURIER_HOME environment variable.

Default locations:
- Linux/macOS: ~/.courier
- Windows: %USERPROFILE%\\.courier
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "COURIER_HOME"


@lru_cache(maxsize=1)
def get_courier_home() -> Path:
    """Get the base directory for all Courier data.

    Resolution order:
    1. COURIER_HOME environment variable (if set)
    2. Platform default (~/.courier)
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()

    return Path.home() / ".courier"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_courier_home() / "config.toml"


def get_database_path() -> Path:
    """Get the default SQLite database path."""
    return get_courier_home() / "courier.db"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_courier_home() / "logs"
