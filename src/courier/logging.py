"""Centralized logging configuration for Courier.

All entry points (CLI, server) should call configure_logging() early.

Scheduler and store events are logged as short event names with structured
attributes passed through ``extra``:

    logger.info("message_sent", extra={"message.id": ..., "workspace.id": ...})

Logging Levels:
- DEBUG: Tick summaries, skipped messages, raw API details
- INFO: Lifecycle events (scheduled, sent, rescheduled, cancelled)
- WARNING: Failed attempts, permanent failures, missing credentials
- ERROR: Store failures and unexpected exceptions
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, TextIO

DEFAULT_LOG_RETENTION_DAYS = 7

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

DEFAULT_REDACT_PATTERNS: list[str] = [
    # Slack bot/user/refresh/rotating tokens
    r"\b(xox[abeprs]-[A-Za-z0-9-]{10,})\b",
    r"\b(xapp-[A-Za-z0-9-]{10,})\b",
    # ENV-style assignments: CLIENT_SECRET=value or API_TOKEN: value
    r"\b[A-Z0-9_]+(?:KEY|TOKEN|SECRET|PASSWORD)\s*[=:]\s*([^\s\"']{8,})",
    # Bearer tokens in headers
    r"\bBearer\s+([A-Za-z0-9._\-+=]{20,})\b",
    # client_secret / refresh_token form fields
    r"\b(?:client_secret|refresh_token)=([^\s&\"']{8,})",
]

# Attributes every LogRecord carries; anything else came in via ``extra``
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "component"}


@dataclass
class SecretRedactor:
    """Masks tokens and secrets in log output.

    Long secrets keep their first and last four characters so a leaked
    value can still be identified.
    """

    patterns: list[re.Pattern[str]] = field(default_factory=list)
    enabled: bool = True

    def __post_init__(self) -> None:
        if not self.patterns:
            self.patterns = [
                re.compile(p, re.IGNORECASE) for p in DEFAULT_REDACT_PATTERNS
            ]

    def redact(self, text: str) -> str:
        if not self.enabled or not text:
            return text
        result = text
        for pattern in self.patterns:
            result = pattern.sub(self._mask_match, result)
        return result

    def _mask_match(self, match: re.Match[str]) -> str:
        full = match.group(0)
        token = match.group(1) if match.lastindex else full

        # Already masked
        if "..." in token:
            return full

        if len(token) < 12:
            return full.replace(token, "***") if token != full else "***"

        masked = f"{token[:4]}...{token[-4:]}"
        return full.replace(token, masked) if token != full else masked


_redactor = SecretRedactor()


def configure_redaction(
    enabled: bool = True, extra_patterns: list[str] | None = None
) -> None:
    """Replace the module-level redactor.

    Args:
        enabled: Whether to enable redaction.
        extra_patterns: Additional regex patterns to match secrets.
    """
    global _redactor
    patterns = [re.compile(p, re.IGNORECASE) for p in DEFAULT_REDACT_PATTERNS]
    if extra_patterns:
        patterns.extend(re.compile(p, re.IGNORECASE) for p in extra_patterns)
    _redactor = SecretRedactor(patterns=patterns, enabled=enabled)


def get_redactor() -> SecretRedactor:
    return _redactor


def prune_old_logs(
    logs_dir: Path,
    retention_days: int = DEFAULT_LOG_RETENTION_DAYS,
    suffix: str = ".jsonl",
) -> int:
    """Delete log files older than the retention period.

    Returns:
        Number of files deleted.
    """
    if not logs_dir.exists():
        return 0

    cutoff = datetime.now(UTC) - timedelta(days=retention_days)
    deleted = 0

    for entry in logs_dir.iterdir():
        if not entry.is_file() or not entry.name.endswith(suffix):
            continue
        try:
            mtime = datetime.fromtimestamp(entry.stat().st_mtime, UTC)
            if mtime < cutoff:
                entry.unlink()
                deleted += 1
        except OSError:
            pass  # File vanished or is not ours to delete

    return deleted


def get_component(logger_name: str) -> str:
    """Short component name for a logger: courier.scheduling.store -> scheduling."""
    parts = logger_name.split(".")
    if len(parts) >= 2 and parts[0] == "courier":
        return parts[1]
    return parts[0]


def extract_extra(record: logging.LogRecord) -> dict[str, Any]:
    """Collect the attributes passed to a log call via ``extra``."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class JSONLHandler(logging.Handler):
    """Writes structured log entries to daily JSONL files.

    Files live at ``<logs_dir>/YYYY-MM-DD.jsonl`` with one JSON object per
    line. Messages, tracebacks and extra attributes are redacted. Files
    older than the retention period are pruned on each daily rotation.
    """

    def __init__(
        self,
        logs_dir: Path,
        retention_days: int = DEFAULT_LOG_RETENTION_DAYS,
    ):
        super().__init__()
        self._logs_dir = logs_dir
        self._logs_dir.mkdir(parents=True, exist_ok=True)
        self._retention_days = retention_days
        self._current_date: str | None = None
        self._file: TextIO | None = None

    def _get_log_file(self) -> TextIO:
        today = datetime.now(UTC).strftime("%Y-%m-%d")
        if self._current_date != today or self._file is None:
            if self._file:
                self._file.close()
            self._current_date = today
            log_path = self._logs_dir / f"{today}.jsonl"
            self._file = log_path.open("a", encoding="utf-8")

            prune_old_logs(self._logs_dir, self._retention_days)

        return self._file

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry: dict[str, Any] = {
                "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
                "level": record.levelname,
                "component": get_component(record.name),
                "logger": record.name,
                "message": _redactor.redact(record.getMessage()),
            }

            if record.exc_info:
                formatter = self.formatter or logging.Formatter()
                exception_text = formatter.formatException(record.exc_info)
                entry["exception"] = _redactor.redact(exception_text)

            extra = extract_extra(record)
            if extra:
                redacted_str = _redactor.redact(json.dumps(extra, default=str))
                try:
                    entry["extra"] = json.loads(redacted_str)
                except json.JSONDecodeError:
                    entry["extra"] = {"_redacted_raw": redacted_str}

            log_file = self._get_log_file()
            log_file.write(json.dumps(entry) + "\n")
            log_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None
        super().close()


class ComponentFormatter(logging.Formatter):
    """Console formatter showing the component and any extra attributes.

    ``message_sent`` with ``extra={"message.id": "abc"}`` renders as
    ``scheduling | message_sent message.id=abc``.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.component = get_component(record.name)
        text = super().format(record)
        extra = extract_extra(record)
        if extra:
            pairs = " ".join(f"{key}={value}" for key, value in extra.items())
            text = f"{text} {pairs}"
        return _redactor.redact(text)


# Third-party loggers that are too noisy at INFO level
NOISY_LOGGERS = [
    "httpx",
    "httpcore",
    "aiosqlite",
    "sqlalchemy.engine",
    "alembic",
]


def resolve_log_level(level: str | None = None) -> str:
    """Resolve a log level name, falling back to COURIER_LOG_LEVEL then INFO."""
    if level is None:
        level = os.environ.get("COURIER_LOG_LEVEL", "INFO")
    level = level.upper()
    if level not in LOG_LEVELS:
        return "INFO"
    return level


def configure_logging(
    level: str | None = None,
    use_rich: bool = False,
    log_to_file: bool = False,
    logs_dir: Path | None = None,
) -> None:
    """Configure logging for Courier.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
            If None, uses COURIER_LOG_LEVEL env var or INFO.
        use_rich: Use Rich handler for colorful output (server mode).
        log_to_file: Also write logs to JSONL files.
        logs_dir: Directory for JSONL files (default: ~/.courier/logs).
    """
    from courier.config.paths import get_logs_path

    log_level = getattr(logging, resolve_log_level(level))

    handlers: list[logging.Handler] = []

    if use_rich:
        from rich.logging import RichHandler

        console_handler: logging.Handler = RichHandler(
            rich_tracebacks=False,
            show_path=False,
            show_time=True,
            markup=False,
        )
        console_handler.setFormatter(ComponentFormatter("%(component)s | %(message)s"))
    else:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(
            ComponentFormatter(
                "%(asctime)s | %(levelname)-8s | %(component)s | %(message)s",
                datefmt="%H:%M:%S",
            )
        )
    handlers.append(console_handler)

    if log_to_file:
        file_handler = JSONLHandler(logs_dir or get_logs_path())
        file_handler.setLevel(log_level)
        handlers.append(file_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,
    )

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
