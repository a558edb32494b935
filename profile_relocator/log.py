#!/usr/bin/env python3
"""
Logging setup for profile-relocator.

Library modules log through ``logging.getLogger(__name__)``; the CLI calls
setup_logging() once to attach a coloured console handler and, optionally,
a size-rotated log file to the package logger.
"""

import logging
import os
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from colorama import Fore, Style

LOGGER_NAME = "profile_relocator"
DEFAULT_MAX_BYTES = 2 * 1024 * 1024
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_TRUTHY = ("1", "true", "yes", "on")


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in _TRUTHY


class UTCFormatter(logging.Formatter):
    """Formatter with ISO-8601 UTC timestamps."""

    converter = time.gmtime

    def __init__(self, fmt: str = LOG_FORMAT, datefmt: str = DATE_FORMAT):
        super().__init__(fmt, datefmt)


class ColoredFormatter(UTCFormatter):
    """Console formatter colouring the level name with colorama."""

    COLORS = {
        "DEBUG": Style.DIM,
        "INFO": Fore.CYAN,
        "WARNING": Fore.YELLOW,
        "ERROR": Fore.RED,
        "CRITICAL": Fore.RED + Style.BRIGHT,
    }

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.COLORS.get(record.levelname)
        if not color:
            return message
        return f"{color}{message}{Style.RESET_ALL}"


class DryRunFilter(logging.Filter):
    """Prefixes every message with [DRY-RUN]."""

    PREFIX = "[DRY-RUN] "

    def filter(self, record: logging.LogRecord) -> bool:
        if not str(record.msg).startswith(self.PREFIX):
            record.msg = f"{self.PREFIX}{record.msg}"
        return True


def setup_logging(
    level: Optional[Union[str, int]] = None,
    log_file: Optional[Union[str, Path]] = None,
    quiet: Optional[bool] = None,
    dry_run: bool = False,
    max_bytes: int = DEFAULT_MAX_BYTES,
    no_color: Optional[bool] = None,
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        level: Log level name or number (default: LOG_LEVEL env or INFO).
        log_file: Optional log file, rotated at max_bytes with one backup.
        quiet: Hide INFO/DEBUG on the console (default: QUIET env).
        dry_run: Prefix every message with [DRY-RUN].
        max_bytes: Rotation size for the log file.
        no_color: Disable colours (default: NO_COLOR env, or stderr not a TTY).

    Returns:
        The configured package logger.
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    if quiet is None:
        quiet = _env_flag("QUIET")
    if no_color is None:
        no_color = _env_flag("NO_COLOR") or not sys.stderr.isatty()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING if quiet else level)
    console_handler.setFormatter(UTCFormatter() if no_color else ColoredFormatter())
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=1, encoding="utf-8"
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(UTCFormatter())
        logger.addHandler(file_handler)

    # 子ロガーのレコードにも付与
    if dry_run:
        dry_run_filter = DryRunFilter()
        for handler in logger.handlers:
            handler.addFilter(dry_run_filter)

    return logger
