import logging
import os
import sys
from typing import cast

from hassflow.logging_ import LOG_LEVELS


def get_log_level() -> LOG_LEVELS:
    log_level = (os.getenv("HASSFLOW__LOG_LEVEL") or os.getenv("HASSFLOW_LOG_LEVEL") or os.getenv("LOG_LEVEL") or "INFO").upper()
    if log_level not in list(LOG_LEVELS.__args__):
        logging.getLogger(__name__).warning("Log level %r is not valid, defaulting to INFO", log_level)
        log_level = "INFO"
    return cast("LOG_LEVELS", log_level)


def get_dev_mode():
    """Check if developer mode should be enabled.

    Returns:
        True if developer mode is enabled, False otherwise.
    """
    logger = logging.getLogger(__name__)
    if "debugpy" in sys.modules:
        logger.warning("Developer mode enabled via 'debugpy'")
        return True

    if sys.gettrace() is not None:
        logger.warning("Developer mode enabled via 'sys.gettrace()'")
        return True

    if sys.flags.dev_mode:
        logger.warning("Developer mode enabled via 'python -X dev'")
        return True

    return False


def coerce_log_level(value: str | LOG_LEVELS | None) -> LOG_LEVELS | None:
    if value is None:
        return None

    if not isinstance(value, str):
        return None

    value = value.upper()

    if value not in list(LOG_LEVELS.__args__):
        return None

    return cast("LOG_LEVELS", value)
