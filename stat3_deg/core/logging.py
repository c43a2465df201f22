# stat3_deg/core/logging.py
"""Logging setup for the STAT3 DEG pipeline.

Console records go through rich's RichHandler (markup enabled, so messages may
carry ``[green]...[/]`` tags and ``:emoji:`` codes). When file logging is on,
the same records are also written to ``<logs_dir>/<date>_<logger>.log``.
Calling ``setup_logging()`` without a name configures the package logger that
modules using ``logging.getLogger(__name__)`` propagate to.
"""

import logging
import re
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

import rich.traceback
from rich.console import Console
from rich.logging import RichHandler

from stat3_deg.core.config import get_logging_config, get_path

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

# rich markup tags and emoji codes, stripped from plain-text output
_MARKUP = re.compile(
    r"\[/?(?:bold|dim|italic|red|green|yellow|blue|cyan|magenta)[a-z ]*\]|\[/\]|:[a-z_]+:"
)


class PlainFormatter(logging.Formatter):
    """Formatter for file and fallback stream output: rich markup removed."""

    def format(self, record: logging.LogRecord) -> str:
        return _MARKUP.sub("", super().format(record))


def _level_from_name(level_name: str) -> int:
    level = logging.getLevelName(str(level_name).upper())
    return level if isinstance(level, int) else logging.INFO


def _rich_handler(level: int) -> RichHandler:
    return RichHandler(
        level=level,
        console=Console(stderr=True),
        show_path=False,
        markup=True,
        rich_tracebacks=True,
    )


def _file_handler(
    level: int, log_format: str, logs_dir: Path, logger_name: str
) -> logging.Handler | None:
    """Rotating file handler, or None when the logs directory is unusable."""
    stem = re.sub(r"\W", "_", logger_name)
    log_path = logs_dir / f"{datetime.now(tz=UTC):%Y-%m-%d}_{stem}.log"
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
        )
    except OSError as e:
        print(f"Cannot write log file {log_path}: {e}", file=sys.stderr)
        return None
    handler.setLevel(level)
    handler.setFormatter(PlainFormatter(log_format, datefmt=DATE_FORMAT))
    return handler


def setup_logging(module_name: str | None = None) -> logging.Logger:
    """Configure and return a logger (the package logger when no name is given).

    Existing handlers on that logger are replaced, so calling this twice for the
    same name does not duplicate output.
    """
    config = get_logging_config()
    level = _level_from_name(config["level"])
    logger_name = module_name or config["root_logger_name"]

    logger = logging.getLogger(logger_name)
    logger.handlers.clear()
    logger.setLevel(level)
    logger.propagate = False

    if config["console_logging"]:
        logger.addHandler(_rich_handler(level))
    if config["file_logging"]:
        handler = _file_handler(level, config["log_format"], get_path("logs_dir"), logger_name)
        if handler is not None:
            logger.addHandler(handler)
    if not logger.handlers:
        fallback = logging.StreamHandler(sys.stderr)
        fallback.setFormatter(PlainFormatter(config["log_format"], datefmt=DATE_FORMAT))
        logger.addHandler(fallback)

    rich.traceback.install(show_locals=False)
    logger.debug(f"Logger '{logger_name}' ready with {len(logger.handlers)} handler(s)")
    return logger
