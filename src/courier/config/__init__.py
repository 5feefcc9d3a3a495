"""Configuration module."""

from courier.config.loader import get_default_config, load_config
from courier.config.models import (
    ConfigError,
    CourierConfig,
    DatabaseConfig,
    SchedulerConfig,
    SlackConfig,
)
from courier.config.paths import (
    get_config_path,
    get_courier_home,
    get_database_path,
    get_logs_path,
)

__all__ = [
    "ConfigError",
    "CourierConfig",
    "DatabaseConfig",
    "SchedulerConfig",
    "SlackConfig",
    "get_config_path",
    "get_courier_home",
    "get_database_path",
    "get_default_config",
    "get_logs_path",
    "load_config",
]
