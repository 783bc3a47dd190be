"""Logging configuration for usage-tracker."""

import logging
from pathlib import Path
from typing import Optional, Union

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

ROOT_LOGGER = "usage_tracker"


def configure_logging(
    level: int = logging.WARNING,
    log_file: Optional[Union[str, Path]] = None,
    console: bool = True,
) -> logging.Logger:
    """Attach handlers to the package logger.

    Only the ``usage_tracker`` logger is touched; a host application keeps
    control of the root logger.

    Args:
        level: Logging level (e.g., logging.INFO)
        log_file: Optional file that receives the same records
        console: Whether to log to stderr

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
        console_handler.setLevel(level)
        logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    return logger
