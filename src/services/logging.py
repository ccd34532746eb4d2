"""Logging configuration for the billing API server.

Provides dual output (stdout + file) with configurable level via LOG_LEVEL env var.
The level from settings is used when LOG_LEVEL is unset. Chatty library
loggers (SQL echo, connection pool, uvicorn access lines) stay at WARNING
unless DEBUG is requested, so the log reads as a trail of billing changes.
"""

import logging
import os
import sys
from pathlib import Path

# Map string level names to logging constants
LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "uvicorn.access")

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_level(default: str = "INFO") -> int:
    """Get logging level from LOG_LEVEL environment variable.

    Args:
        default: Level name used when LOG_LEVEL is unset

    Returns:
        Logging level constant (unknown names fall back to INFO)
    """
    level_str = os.getenv("LOG_LEVEL", default).upper()
    return LOG_LEVEL_MAP.get(level_str, logging.INFO)


def build_handlers(log_path: Path, level: int) -> list[logging.Handler]:
    """Stdout and file handlers sharing one formatter and level."""
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)]
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def setup_server_logging(log_file: str = "logs/server.log", level: str = "INFO") -> None:
    """
    Configure root logger for the billing API server.

    Args:
        log_file: Path to log file (default: logs/server.log), parent
            directories are created
        level: Level name from settings, used when LOG_LEVEL is not set

    Repeated calls replace the handlers instead of stacking them.
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    log_level = get_log_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    # Remove any existing handlers to avoid duplicates
    root_logger.handlers.clear()
    for handler in build_handlers(log_path, log_level):
        root_logger.addHandler(handler)

    quiet_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    logging.getLogger(__name__).debug("Server logging configured: file=%s, level=%s", log_path, log_level)


__all__ = ["get_log_level", "setup_server_logging", "build_handlers", "QUIET_LOGGERS"]
