"""Logger configuration for the "enhance" logger hierarchy."""
import logging
from typing import Optional

from config.settings import settings


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Apply ``level`` (default: settings.log_level) to the engine's loggers.

    Handlers are left to the host application; a NullHandler keeps the
    library quiet when none is configured.
    """
    logger = logging.getLogger("enhance")
    logger.setLevel((level or settings.log_level).upper())
    if not any(isinstance(h, logging.NullHandler) for h in logger.handlers):
        logger.addHandler(logging.NullHandler())
    return logger
