"""
Logging setup for the command line entry point.

Library modules only create loggers with logging.getLogger(__name__);
handlers are installed here, by the application.
"""

import logging
from typing import Union

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


def configure_logging(level: Union[int, str] = logging.WARNING) -> None:
    """
    Install a stream handler on the package logger.

    Args:
        level: Logging level name or number

    Raises:
        ValueError: If the level name is unknown
    """
    if isinstance(level, str):
        name = level.upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {name}")

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logger = logging.getLogger('cryptochain')
    logger.handlers[:] = [handler]
    logger.setLevel(level)
