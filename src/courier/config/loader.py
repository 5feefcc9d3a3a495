"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import SecretStr, ValidationError

from courier.config.models import ConfigError, CourierConfig
from courier.config.paths import get_config_path


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        get_config_path(),  # ~/.courier/config.toml (or COURIER_HOME)
        Path("/etc/courier/config.toml"),  # System-wide
    ]


def _resolve_env_values(config: dict[str, Any]) -> dict[str, Any]:
    """Fill unset secrets and settings from environment variables."""
    slack = config.setdefault("slack", {})
    if slack.get("client_id") is None and (value := os.environ.get("SLACK_CLIENT_ID")):
        slack["client_id"] = value
    if slack.get("client_secret") is None and (
        value := os.environ.get("SLACK_CLIENT_SECRET")
    ):
        slack["client_secret"] = SecretStr(value)

    if value := os.environ.get("COURIER_DATABASE_URL"):
        database = config.setdefault("database", {})
        if database.get("url") is None:
            database["url"] = value

    return config


def load_config(path: Path | None = None) -> CourierConfig:
    """Load configuration from TOML file.

    Args:
        path: Explicit path to config file. If None, searches default locations.

    Returns:
        Validated CourierConfig instance. Defaults are used when no file exists
        and no explicit path was given.

    Raises:
        FileNotFoundError: If an explicit path doesn't exist.
        ConfigError: If the file is not valid TOML or fails validation.
    """
    config_path: Path | None = None
    if path is not None:
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        config_path = path
    else:
        config_path = next(
            (p for p in _get_default_config_paths() if p.exists()), None
        )

    raw: dict[str, Any] = {}
    if config_path is not None:
        try:
            with config_path.open("rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    raw = _resolve_env_values(raw)

    if "database" in raw and isinstance(raw["database"].get("path"), str):
        raw["database"]["path"] = Path(raw["database"]["path"]).expanduser()

    try:
        return CourierConfig.model_validate(raw)
    except ValidationError as e:
        source = config_path or "defaults"
        raise ConfigError(f"Invalid configuration ({source}): {e}") from e


def get_default_config() -> CourierConfig:
    """Get default configuration."""
    return CourierConfig()
