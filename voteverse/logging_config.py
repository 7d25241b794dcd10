"""
Logging configuration for voteverse.

Sets up loguru with appropriate levels and formatting.
"""

import sys

from loguru import logger
from typing import Any


def setup_logging(
    level: str = "INFO", debug: bool = False, log_file: str | None = "voteverse.log"
) -> None:
    """
    Configure loguru logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        debug: If True, enable debug logging and more verbose output
        log_file: Rotating file sink for INFO and above, None to disable
    """
    # Remove default handler
    logger.remove()
    # Records logged without get_logger() still need extra[name]
    logger.configure(extra={"name": "voteverse"})

    log_level = "DEBUG" if debug else level

    logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[name]}:{function}:{line}</cyan> - <level>{message}</level>",
    )

    if log_file:
        logger.add(
            log_file,
            level="INFO",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}",
            rotation="10 MB",
            retention="7 days",
            compression="zip",
        )


def get_logger(name: str | None = None) -> Any:
    """
    Get a logger instance.

    Args:
        name: Optional component name bound into every record

    Returns:
        Logger instance
    """
    return logger.bind(name=name or "voteverse")
