"""
Logging configuration and utilities for pomosync.

Provides colored console output and rotating file logging. The console
shows a compact "LEVEL message" line; the file keeps the full technical
record (timestamp, logger, function).

Usage:
    from pomosync.core.logger import get_logger, setup_logging

    setup_logging(level="DEBUG", log_file="~/.pomosync/pomosync.log")
    logger = get_logger(__name__)
    logger.info("Sync finished")
"""

import logging
import logging.handlers
import re
import sys
from pathlib import Path

import colorama
from colorama import Back, Fore, Style


# Initialize colorama for Windows compatibility
colorama.init()

ROOT_LOGGER_NAME = "pomosync"

FILE_FORMAT = "%(asctime)s | %(name)-28s | %(levelname)-8s | %(funcName)-20s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries whose chatter never belongs in our output
QUIET_LIBRARIES = ("urllib3", "urllib3.connectionpool", "requests")


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colored level names for the console"""

    COLORS = {
        'DEBUG': Fore.CYAN,
        'INFO': Fore.GREEN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.RED + Back.WHITE + Style.BRIGHT,
    }

    def __init__(self, fmt: str | None = None, use_colors: bool = True) -> None:
        super().__init__(fmt or '%(levelname)s %(message)s')
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        if self.use_colors and record.levelname in self.COLORS:
            # Work on a copy so file handlers still see the plain level name
            record_copy = logging.makeLogRecord(record.__dict__)
            record_copy.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{Style.RESET_ALL}"
            return super().format(record_copy)
        return super().format(record)


def parse_size(size_str: str) -> int:
    """
    Parse size string to bytes

    Args:
        size_str: Size string like "10MB", "1GB", "500KB"

    Returns:
        Size in bytes
    """
    multipliers = {
        'B': 1,
        'KB': 1024,
        'MB': 1024 ** 2,
        'GB': 1024 ** 3,
    }

    match = re.match(r'^(\d+(?:\.\d+)?)\s*([KMG]?B)$', size_str.upper().strip())
    if not match:
        raise ValueError(f"Invalid size format: {size_str}")

    number, unit = match.groups()
    return int(float(number) * multipliers[unit])


def setup_logging(
    level: str = "INFO",
    log_file: str | Path | None = None,
    console_output: bool = True,
    colored_output: bool = True,
    max_size: str = "10MB",
    backup_count: int = 3
) -> logging.Logger:
    """
    Configure the pomosync logger hierarchy.

    Args:
        level: Console logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (None to disable file logging)
        console_output: Enable console logging
        colored_output: Enable colored console output
        max_size: Maximum log file size before rotation
        backup_count: Number of rotated files to keep

    Returns:
        The configured package logger.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    # Capture everything, filter at handler level
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(ColoredFormatter(use_colors=colored_output))
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=parse_size(max_size),
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
        logger.addHandler(file_handler)

    for lib in QUIET_LIBRARIES:
        logging.getLogger(lib).setLevel(logging.WARNING)

    logger.debug(f"Logging initialized - Level: {level}, Console: {console_output}, File: {log_file}")
    return logger


def configure_from_config(config) -> logging.Logger:
    """Configure logging from a loaded pomosync Config."""
    log_file = None
    if config.logging.file:
        log_file = Path(config.logging.file).expanduser()
        if not log_file.is_absolute():
            log_file = config.config_directory() / log_file

    return setup_logging(
        level=config.logging.level,
        log_file=log_file,
        console_output=config.logging.console_output,
        colored_output=config.logging.colored_output,
        max_size=config.logging.max_size,
        backup_count=config.logging.backup_count
    )


def get_current_log_file() -> Path | None:
    """Return the active rotating log file, if any."""
    for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
        if isinstance(handler, logging.handlers.RotatingFileHandler):
            return Path(handler.baseFilename)
    return None


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger inside the pomosync hierarchy.

    Args:
        name: Logger name (typically __name__)
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """Flush and close every handler attached to the package logger."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in logger.handlers[:]:
        handler.flush()
        handler.close()
        logger.removeHandler(handler)
