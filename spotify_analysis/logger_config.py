"""
Logging configuration for Spotify Analysis.

Sets up logging with dictConfig so the level can come from the
environment and setup can be repeated (tests, CLI, API server).

Environment Variables:
    LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL (case-insensitive).
               Defaults to INFO if not set or invalid.
    SPOTIFY_ANALYSIS_LOG_FILE: Optional path of a rotating log file.

Usage:
    from spotify_analysis.logger_config import setup_logging
    setup_logging()  # LOG_LEVEL env var, defaults to INFO
    setup_logging(level=logging.DEBUG, log_file="import.log")
"""

import logging
import logging.config
import os
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
PACKAGE_LOGGER = "spotify_analysis"


def get_log_level() -> int:
    """
    Get log level from the LOG_LEVEL environment variable.

    Returns:
        Logging level constant, logging.INFO if unset or invalid.
    """
    level_name = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    # getLevelName returns "Level X" for unknown names
    return level if isinstance(level, int) else logging.INFO


def setup_logging(
    level: Optional[int] = None,
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure logging for the application.

    Safe to call more than once; existing loggers are kept.

    Args:
        level: Logging level. If None, read from LOG_LEVEL (default: INFO).
        format_string: Optional custom format string.
        log_file: Optional rotating log file. If None, read from
                  SPOTIFY_ANALYSIS_LOG_FILE.
    """
    if level is None:
        level = get_log_level()
    if log_file is None:
        log_file = os.getenv("SPOTIFY_ANALYSIS_LOG_FILE") or None

    handlers = ["console"]
    config: dict = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": format_string or DEFAULT_FORMAT,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "standard",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            PACKAGE_LOGGER: {"level": level, "propagate": True},
        },
        "root": {
            "level": level,
            "handlers": handlers,
        },
    }

    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "standard",
            "filename": log_file,
            "maxBytes": 10_485_760,  # 10 MB
            "backupCount": 5,
            "encoding": "utf-8",
        }
        handlers.append("file")

    logging.config.dictConfig(config)
