"""Shared logger for the console backend"""

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"

# Suppress verbose third-party logs
for _noisy in ("e2b", "httpx", "httpcore", "openai", "paramiko"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)


def define_log_level(level: str = None, name: str = "eburon") -> logging.Logger:
    """Configure and return the application logger.

    The level comes from the argument, then LOG_LEVEL, then INFO.
    """
    level = (level or os.getenv("LOG_LEVEL") or "INFO").upper()

    _logger = logging.getLogger(name)
    _logger.setLevel(level)
    if not _logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        _logger.addHandler(handler)
    return _logger


logger = define_log_level()
