"""
Central logging configuration for familycal.

Keeps familycal modules at INFO (or DEBUG on request) while holding noisy
third-party loggers at WARNING.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

FAMILYCAL_MODULES = [
    "familycal",
    "familycal.calendar.rrule_interpreter",
    "familycal.calendar.materializer",
    "familycal.calendar.series_editor",
    "familycal.calendar.window_cache",
    "familycal.layout.time_grid",
    "familycal.layout.pointer",
]

THIRD_PARTY_LOGGERS = [
    "asyncio",
    "dateutil",
    "pydantic",
    "yaml",
]

VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def _build_console_handler(level: int) -> logging.Handler:
    """Create the colorized stderr handler used when nothing else is installed."""
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    # Only the level is colorized; column-aligned to 7 chars
    handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
    return handler


def configure_logging(
    debug_mode: bool = False,
    force_debug: Optional[bool] = None,
    log_level: Optional[str] = None,
) -> None:
    """
    Configure logging levels for familycal.

    Args:
        debug_mode: Whether to enable debug logging for familycal modules
        force_debug: Override debug mode setting (None to use env var detection)
        log_level: Configured root level, used when debug is off and
            FAMILYCAL_LOG_LEVEL is unset

    Environment Variables:
        FAMILYCAL_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        FAMILYCAL_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("FAMILYCAL_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("FAMILYCAL_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    configured_level = (log_level or "").strip().upper()

    root_level = logging.INFO
    if final_debug:
        root_level = logging.DEBUG
    elif configured_level in VALID_LEVELS:
        root_level = getattr(logging, configured_level)
    if env_log_level in VALID_LEVELS:
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    # Preserve handlers installed by the host application or pytest
    if not root_logger.handlers:
        root_logger.addHandler(_build_console_handler(root_level))

    logger_config: dict[str, int] = dict.fromkeys(THIRD_PARTY_LOGGERS, logging.WARNING)

    familycal_level = logging.DEBUG if final_debug else max(logging.INFO, root_level)
    for module in FAMILYCAL_MODULES:
        logger_config[module] = familycal_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for familycal modules")
    else:
        root_logger.debug("Production logging configuration applied")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}

    for logger_name in ["familycal", *THIRD_PARTY_LOGGERS]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)

    return status
