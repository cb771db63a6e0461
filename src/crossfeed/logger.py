"""
Logging for crossfeed.

loguru sinks configured from LoggingConfig. Every record carries
``extra["platform"]`` so lines from concurrent Bluesky and Mastodon work can be
told apart; it is "-" unless a logger was bound with ``get_logger(platform=...)``.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger as _logger

from crossfeed.config import get_config

UNSCOPED = "-"


def setup_logger(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    rotation: Optional[str] = None,
    retention: Optional[str] = None,
    format: Optional[str] = None,
) -> None:
    """Replace all sinks with the configured console and file sinks.

    Args:
        level: Minimum level; LoggingConfig.level if None
        log_file: Log file path; also turns file logging on
        rotation: File rotation (e.g. "50 MB", "1 day")
        retention: File retention (e.g. "14 days")
        format: loguru format string
    """
    log_config = get_config().logging

    level = (level or log_config.level).upper()
    format = format or log_config.format

    _logger.remove()
    _logger.configure(extra={"platform": UNSCOPED})

    if log_config.console_enabled:
        _logger.add(sys.stderr, format=format, level=level, colorize=True, diagnose=False)

    if log_file or log_config.file_enabled:
        log_path = Path(log_file or log_config.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        _logger.add(
            str(log_path),
            format=format,
            level=level,
            rotation=rotation or log_config.rotation,
            retention=retention or log_config.retention,
            compression="zip",
            encoding="utf-8",
            enqueue=True,
            diagnose=False,
        )


def get_logger(name: Optional[str] = None, platform: Optional[str] = None):
    """Get a logger bound to a module name and, optionally, a platform tag.

    Args:
        name: Logger name (typically __name__ from calling module)
        platform: Platform tag shown in the ``{extra[platform]}`` field

    Returns:
        Logger instance
    """
    extra = {}
    if name:
        extra["name"] = name
    if platform:
        extra["platform"] = str(platform)
    return _logger.bind(**extra) if extra else _logger


logger = _logger

__all__ = [
    "setup_logger",
    "get_logger",
    "logger",
]
