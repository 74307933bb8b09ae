"""
Logging configuration for feedsync.

Console output goes through rich when available; an optional file handler
captures everything at DEBUG for later diagnosis of failed jobs. Lines logged
while a job runs carry its correlation ID; ``json_format`` switches both
handlers to JSON lines.
"""

import logging
import sys
import traceback
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

from feedsync.observability.structured_logging import CorrelationIdFilter, StructuredFormatter

ROOT_LOGGER = "feedsync"


class FileFormatter(logging.Formatter):
    """Formatter for file logs - clean and parseable. Lines logged inside a job carry its ID."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        self._correlated = logging.Formatter(
            fmt="%(asctime)s [%(levelname)-8s] %(name)s [%(correlation_id)s]: %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )

    def format(self, record: logging.LogRecord) -> str:
        if getattr(record, "correlation_id", None):
            result = self._correlated.format(record)
        else:
            result = super().format(record)
        if record.exc_info and not record.exc_text:
            result += "\n" + "".join(traceback.format_exception(*record.exc_info))
        return result


class PlainFormatter(logging.Formatter):
    """``level: timestamp - msg``; errors also carry ``file:line``."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.ERROR and record.pathname:
            location = f"{Path(record.pathname).name}:{record.lineno}"
            return f"{record.levelname}: {self.formatTime(record)} - {location} - {record.getMessage()}"
        return f"{record.levelname}: {self.formatTime(record)} - {record.getMessage()}"


LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _parse_level(level: str | int) -> int:
    """Parse a logging level given as name or int; unknown names map to INFO."""
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        return LEVEL_MAP.get(level.upper(), logging.INFO)
    return logging.INFO


def setup_logging(
    level: str | int = logging.INFO,
    log_file: str | Path | None = None,
    format_string: str | None = None,
    file_mode: str = "a",
    console: Console | None = None,
    console_enabled: bool = True,
    use_rich: bool = True,
    json_format: bool = False,
) -> logging.Logger:
    """
    Setup logging for feedsync.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int (default: INFO)
        log_file: Optional file path to write logs to
        format_string: Optional custom format string for the plain console handler
        file_mode: 'a' to append, 'w' to overwrite
        console: Optional rich Console to log through
        console_enabled: Whether to enable console logging
        use_rich: Use RichHandler for console output
        json_format: Emit JSON lines (console and file) instead of text

    Returns:
        The ``feedsync`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level_int = _parse_level(level)
    logger.setLevel(level_int)

    if console_enabled:
        if json_format:
            handler: logging.Handler = logging.StreamHandler(sys.stderr)
            handler.setLevel(level_int)
            handler.setFormatter(StructuredFormatter())
        elif use_rich:
            handler = RichHandler(
                console=console or Console(stderr=True),
                level=level_int,
                show_time=True,
                show_path=False,
                markup=False,
                rich_tracebacks=True,
                log_time_format="[%X]",
            )
        else:
            handler = logging.StreamHandler(sys.stderr)
            handler.setLevel(level_int)
            handler.setFormatter(logging.Formatter(format_string) if format_string else PlainFormatter())
        handler.addFilter(CorrelationIdFilter())
        logger.addHandler(handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode=file_mode)
        # File captures everything; the logger level still filters.
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(StructuredFormatter() if json_format else FileFormatter())
        file_handler.addFilter(CorrelationIdFilter())
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def setup_logging_from_config(config: dict[str, Any], project_dir: Path | None = None) -> logging.Logger:
    """
    Setup logging from the ``logging`` section of the configuration.

    Keys: ``level``, ``file`` (default ``logs/feedsync.log``), ``file_enabled``,
    ``file_mode``, ``format`` (``json`` for JSON lines, otherwise a format string
    for the plain console), ``console_enabled``, ``console_type`` (``rich`` or
    ``plain``).
    """
    logging_config = config.get("logging") or {}

    level = logging_config.get("level", logging.INFO)
    file_enabled = logging_config.get("file_enabled", True)
    log_file: str | Path | None = None
    if file_enabled:
        log_file = Path(logging_config.get("file") or "logs/feedsync.log")
        if project_dir and not log_file.is_absolute():
            log_file = project_dir / log_file

    console_enabled = logging_config.get("console_enabled", True)
    fmt = logging_config.get("format")
    json_format = str(fmt).lower() == "json"
    return setup_logging(
        level=level,
        log_file=log_file,
        format_string=None if json_format else fmt,
        file_mode=logging_config.get("file_mode", "a"),
        console_enabled=console_enabled,
        use_rich=logging_config.get("console_type", "rich") == "rich",
        json_format=json_format,
    )


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Get a logger instance under the ``feedsync`` hierarchy.

    Args:
        name: Logger name (default: "feedsync")
    """
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
