"""
Centralized logging setup for the persona engine.
"""

import sys

from loguru import logger

from .config import LoggingConfig

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def setup_logging(config: LoggingConfig | None = None) -> None:
    """
    Replace loguru's default sink with a stderr sink at the configured level.

    Args:
        config: LoggingConfig instance, uses defaults if None
    """
    config = config or LoggingConfig()
    logger.remove()
    logger.add(sys.stderr, level=config.level.upper(), format=LOG_FORMAT)
