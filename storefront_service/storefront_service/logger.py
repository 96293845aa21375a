"""Logger module for logging messages."""

import os
import sys
from typing import Optional

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def configure_logger(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Replace loguru's default handler with the service sinks.

    Args:
        log_level: Minimum level written to stderr and the log file.
        log_file: Optional path of a rotating log file.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=log_level,
        format=CONSOLE_FORMAT,
        colorize=True,
        enqueue=True,
        catch=True,
        backtrace=True,
        diagnose=True,
    )
    if log_file:
        logger.add(
            log_file,
            level=log_level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}",
            rotation="10 MB",
            retention="1 week",
            compression="gz",
        )


configure_logger(os.getenv("LOG_LEVEL", "INFO"), os.getenv("LOG_FILE"))

__all__ = ["logger", "configure_logger"]
