"""
Logging utilities.

WHAT: Centralized logging configuration
WHY: Consistent log format and easy logger access
HOW: Python logging with file and console handlers
"""

import logging
import sys
from pathlib import Path

from ..core.config import settings


def setup_logging(level: str | None = None, log_file: str | None = None):
    """
    Configure library logging.

    WHAT: Set up the package logger with console and optional file handlers
    WHY: Provider traces go to the file, summaries to the console
    HOW: Create handlers with formatters, set levels from config

    Args:
        level: Override for settings.LOG_LEVEL
        log_file: Override for settings.LOG_FILE ("" disables the file handler)
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    log_path = settings.LOG_FILE if log_file is None else log_file

    package_logger = logging.getLogger("llmbridge")
    package_logger.setLevel(getattr(logging, level_name, logging.INFO))

    # Remove existing handlers
    package_logger.handlers.clear()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(console_formatter)
    package_logger.addHandler(console_handler)

    # File handler
    if log_path:
        path = Path(log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setLevel(logging.DEBUG)
        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(pathname)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(file_formatter)
        package_logger.addHandler(file_handler)

    package_logger.info(f"Logging initialized (level={level_name}, file={log_path or 'none'})")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
