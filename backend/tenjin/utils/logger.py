"""
Tenjin Structured Logger
All modules log under ``tenjin.<area>``; this configures the shared parent.
"""

import logging
import sys
from typing import TextIO

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-25s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are chatty at INFO during a live session
QUIET_LOGGERS = ("httpx", "httpcore", "websockets", "google_genai")


def setup_logging(level: str = "INFO", stream: TextIO = sys.stdout) -> logging.Logger:
    """Configure the ``tenjin`` logger; safe to call more than once."""
    logger = logging.getLogger("tenjin")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger
