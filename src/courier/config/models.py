"""Configuration models using Pydantic."""

import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, model_validator

from courier.config.paths import get_database_path

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Configuration error."""

    pass


class SlackConfig(BaseModel):
    """Slack app credentials and API settings.

    client_id/client_secret are only needed to refresh rotating tokens.
    """

    client_id: str | None = None
    client_secret: SecretStr | None = None
    api_url: str = "https://slack.com/api"
    timeout: float = Field(default=10.0, gt=0)


class SchedulerConfig(BaseModel):
    """Configuration for the delivery scheduler."""

    poll_interval: float = Field(default=60.0, gt=0)
    max_workers: int = Field(default=4, ge=1, le=32)
    max_retries: int = Field(default=3, ge=0)
    retry_delay: int = Field(default=300, ge=1)  # seconds, fixed backoff
    request_timeout: float = Field(default=10.0, gt=0)


class DatabaseConfig(BaseModel):
    """Configuration for the message database.

    ``url`` takes precedence over ``path`` when both are set.
    """

    path: Path = Field(default_factory=get_database_path)
    url: str | None = None


class CourierConfig(BaseModel):
    """Root configuration model."""

    slack: SlackConfig = Field(default_factory=SlackConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    log_level: str | None = None

    @model_validator(mode="after")
    def _validate_log_level(self) -> "CourierConfig":
        if self.log_level is not None:
            level = self.log_level.upper()
            if level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
                raise ValueError(f"Invalid log_level: {self.log_level}")
            self.log_level = level
        return self

    def resolve_slack_credentials(self) -> tuple[str, SecretStr] | None:
        """Resolve the Slack app client id and secret.

        Resolution order:
        1. [slack] section
        2. SLACK_CLIENT_ID / SLACK_CLIENT_SECRET environment variables

        Returns:
            (client_id, client_secret), or None if either is missing.
        """
        client_id = self.slack.client_id or os.environ.get("SLACK_CLIENT_ID")
        client_secret = self.slack.client_secret
        if client_secret is None and (env := os.environ.get("SLACK_CLIENT_SECRET")):
            client_secret = SecretStr(env)
        if not client_id or client_secret is None:
            return None
        return client_id, client_secret
