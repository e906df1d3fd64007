"""
Logging configuration for permit-kit
"""

import logging
import sys
from typing import Optional, TextIO, Union


def setup_logging(level: Union[int, str] = logging.INFO, stream: Optional[TextIO] = None) -> None:
    """
    Configure logging with timestamp, file and line number information.

    Library modules only create loggers; applications call this once at
    startup (the issuer service does it when it is created).

    Args:
        level: Logging level, as an int or a level name such as "DEBUG" (default: INFO)
        stream: Output stream for the console handler (default: sys.stdout)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(levelname)-8s %(name)s %(filename)s:%(lineno)d %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
