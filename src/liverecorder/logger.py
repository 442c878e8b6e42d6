"""
Logging for Live Recorder.
Colored console output plus a size-rotated log file, with the capture key
of the anchor attached to every record logged through an anchor logger.
"""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


ROOT_LOGGER = 'live_recorder'


class Colors:
    """ANSI escape codes used by the console formatter."""
    RESET = "\033[0m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    GRAY = "\033[90m"


class _RecordFormatter(logging.Formatter):
    """Shared layout: a formatted line, then the traceback if there is one."""

    time_format = '%Y-%m-%d %H:%M:%S'

    def line(self, record: logging.LogRecord, stamp: str, anchor: Optional[str]) -> str:
        raise NotImplementedError

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime(self.time_format)
        text = self.line(record, stamp, getattr(record, 'anchor', None))
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


class ColoredFormatter(_RecordFormatter):
    """Console lines: time, colored level, [anchor], message."""

    time_format = '%H:%M:%S'

    LEVEL_COLORS = {
        logging.DEBUG: Colors.GRAY,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.MAGENTA,
    }

    def line(self, record, stamp, anchor):
        color = self.LEVEL_COLORS.get(record.levelno, Colors.RESET)
        tag = f"{Colors.CYAN}[{anchor}]{Colors.RESET} " if anchor else ""
        return (
            f"{Colors.GRAY}{stamp}{Colors.RESET} "
            f"{color}{record.levelname:8}{Colors.RESET} {tag}{record.getMessage()}"
        )


class FileFormatter(_RecordFormatter):
    """Pipe-separated lines with a fixed-width anchor column."""

    def line(self, record, stamp, anchor):
        return f"{stamp} | {record.levelname:8} | {anchor or '-':24} | {record.getMessage()}"


class AnchorLoggerAdapter(logging.LoggerAdapter):
    """Tags records with the capture key of one anchor."""

    def __init__(self, logger: logging.Logger, anchor: str):
        super().__init__(logger, {'anchor': anchor})

    def process(self, msg, kwargs):
        extra = dict(kwargs.get('extra') or {})
        extra['anchor'] = self.extra['anchor']
        kwargs['extra'] = extra
        return msg, kwargs


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter())
    return handler


def _file_handler(log_file: str, max_size_mb: int, backup_count: int) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding='utf-8'
    )
    handler.setFormatter(FileFormatter())
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_size_mb: int = 10,
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the ``live_recorder`` logger.

    Replaces any handlers installed earlier, so calling it twice does not
    duplicate output.

    Args:
        level: Name of the minimum level, e.g. "DEBUG" or "INFO".
        log_file: Rotated log file; console only when None.
        max_size_mb: Size at which the log file is rotated.
        backup_count: Rotated files to keep.

    Returns:
        The configured root logger of the application.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    logger.addHandler(_console_handler())
    if log_file:
        logger.addHandler(_file_handler(log_file, max_size_mb, backup_count))

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Application logger, or its ``name`` child."""
    return logging.getLogger(f'{ROOT_LOGGER}.{name}' if name else ROOT_LOGGER)


def get_anchor_logger(anchor: str) -> AnchorLoggerAdapter:
    """
    Logger for one anchor.

    Args:
        anchor: Capture key of the anchor, e.g. "bili_12345".
    """
    return AnchorLoggerAdapter(get_logger(), anchor)
