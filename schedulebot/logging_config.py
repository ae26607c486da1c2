"""
Central logging configuration for schedulebot.

Keeps schedulebot's own loggers at DEBUG or INFO and quiets the chatty
third-party libraries it drives (HTTP client, event loop, ICS parser).
"""

import logging
import os
from typing import Optional

PACKAGE_MODULES = (
    "schedulebot",
    "schedulebot.ics_parser",
    "schedulebot.fetcher",
    "schedulebot.rrule_expander",
    "schedulebot.materializer",
    "schedulebot.availability",
    "schedulebot.schedule",
)

THIRD_PARTY_LEVELS: dict[str, int] = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "icalendar": logging.INFO,
}


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> int:
    """
    Configure logger levels for schedulebot.

    Args:
        debug_mode: Whether to enable debug logging for schedulebot modules
        force_debug: Override debug mode setting (None to use env var detection)

    Returns:
        The root level that was applied

    Environment Variables:
        SCHEDULEBOT_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        SCHEDULEBOT_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("SCHEDULEBOT_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("SCHEDULEBOT_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Handlers come from schedulebot._init_logging; only levels are set here
    logging.getLogger().setLevel(root_level)

    logger_config = dict(THIRD_PARTY_LEVELS)
    package_level = logging.DEBUG if final_debug else logging.INFO
    for module in PACKAGE_MODULES:
        logger_config[module] = package_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        logging.getLogger("schedulebot").debug(
            "Debug logging enabled for schedulebot modules; third-party debug logs suppressed"
        )
    return root_level
