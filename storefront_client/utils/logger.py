"""Logging utilities for the storefront client"""

import logging
import os
import sys
from typing import Optional

from ..config import LoggingConfig


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger instance

    Args:
        name: Logger name (usually __name__)
        level: Optional log level override

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if level:
        log_level = getattr(logging, level.upper(), logging.INFO)
        logger.setLevel(log_level)

    return logger


def setup_logging(logging_config: LoggingConfig, debug: bool = False) -> logging.Logger:
    """
    Configure the root logger from LoggingConfig

    Console output goes to stderr; a file handler is added when a log
    file is configured and its directory can be created.

    Args:
        logging_config: Logging section of the client configuration
        debug: Force DEBUG level

    Returns:
        The configured root logger
    """
    log_level = getattr(logging, logging_config.level.upper(), logging.INFO)
    if debug:
        log_level = logging.DEBUG

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(logging_config.format, datefmt='%Y-%m-%d %H:%M:%S')

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(log_level)
    stderr_handler.setFormatter(formatter)
    root_logger.addHandler(stderr_handler)

    if logging_config.file:
        try:
            log_dir = os.path.dirname(logging_config.file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            file_handler = logging.FileHandler(logging_config.file)
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except (OSError, PermissionError) as e:
            root_logger.warning(f"Could not create log file {logging_config.file}: {e}")

    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root_logger


def mask_token(token: Optional[str]) -> str:
    """Shorten a bearer token for log output"""
    if not token:
        return "<none>"
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}...{token[-4:]}"
