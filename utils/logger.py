"""
============================================================================
PROBEMON - LOGGING UTILITY
============================================================================
Logging setup built on loguru: a console sink, an optional rotating file
sink (plain text or JSON-serialized) and an optional errors-only file.

Modules obtain a named logger with ``get_logger("Name")``; the name is
bound into every record so sinks can show which component logged it.

License: MIT
============================================================================
"""

import sys
import time
from functools import wraps
from typing import Optional

from loguru import logger

from config.settings import Settings, get_settings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}"

# Records logged through the bare loguru logger still need extra[name]
logger.configure(extra={"name": "probemon"})


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure logging system with multiple sinks.

    Args:
        settings: Application settings; the cached settings are used
            when omitted.
    """
    settings = settings or get_settings()
    log_settings = settings.logging

    # Remove default loguru handler
    logger.remove()

    log_level = log_settings.level.value

    # Console sink
    if log_settings.console_enabled:
        logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=log_level,
            colorize=log_settings.console_colored,
            backtrace=True,
            diagnose=settings.debug,
        )

    # File sink
    if log_settings.file_enabled:
        log_settings.file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_settings.file_path,
            format=FILE_FORMAT,
            level=log_level,
            rotation=log_settings.file_rotation,
            retention=log_settings.file_retention,
            compression=log_settings.file_compression,
            serialize=log_settings.json_enabled,
            backtrace=True,
            diagnose=settings.debug,
            enqueue=True,
        )

    # Error log file (separate file for errors)
    if log_settings.error_file_enabled:
        log_settings.error_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_settings.error_file_path,
            format=FILE_FORMAT,
            level="ERROR",
            rotation="1 day",
            retention="7 days",
            compression=log_settings.file_compression,
            backtrace=True,
            diagnose=settings.debug,
            enqueue=True,
        )

    get_logger("Logging").info(
        f"Logging initialized: level={log_level}, "
        f"console={log_settings.console_enabled}, file={log_settings.file_enabled}"
    )


def get_logger(name: Optional[str] = None):
    """
    Get logger instance with optional name.

    Args:
        name: Logger name (component name or __name__)

    Returns:
        Logger instance
    """
    if name:
        return logger.bind(name=name)
    return logger


# ============================================================================
# LOG DECORATORS
# ============================================================================

def log_execution_time(name: str):
    """
    Decorator logging how long a blocking call took, at DEBUG level.

    Args:
        name: Logger name to report under
    """
    log = get_logger(name)

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                elapsed = time.perf_counter() - start_time
                log.debug(f"{func.__qualname__} took {elapsed:.3f}s")
        return wrapper

    return decorator
