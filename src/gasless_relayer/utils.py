"""
Logging helpers shared by the relayer, its server and its client.

``logger`` is the package logger; ``setup_logger`` attaches a stream handler
once; ``error_context`` logs and re-raises anything escaping a block.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional, Union

LOGGER_NAME = "gasless_relayer"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

logger = logging.getLogger(LOGGER_NAME)


def setup_logger(level: Union[int, str] = logging.INFO, fmt: Optional[str] = None) -> logging.Logger:
    """
    Configure the package logger.

    Safe to call more than once; only the first call attaches a handler.

    Args:
        level: Logging level name or number (e.g. ``"DEBUG"``).
        fmt: Optional format string, defaults to ``LOG_FORMAT``.

    Returns:
        logging.Logger: The configured package logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(fmt or LOG_FORMAT))
        logger.addHandler(handler)
    logger.propagate = False
    return logger


@contextmanager
def error_context(operation: str, log: Optional[logging.Logger] = None) -> Iterator[None]:
    """
    Log an exception raised inside the block with the operation name, then re-raise.

    Example:
        with error_context("startup balance check"):
            balance = await relayer.get_relayer_balance()
    """
    log = log or logger
    try:
        yield
    except Exception as e:
        log.error("%s failed: %s", operation, e)
        raise
