"""Logging configuration for the Nudge reminder service.

One "nudge" logger for the whole process. Every line passes through the
sanitizing filter before it reaches a handler, so a credential echoed in an
exception message never lands in the log file.
"""

import logging
import sys
from datetime import datetime

from config import LOG_DIR, LOG_LEVEL
from utils.log_sanitizer import SanitizingFilter

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler.executors.default", "apscheduler.scheduler")


def setup_logging(level: str = LOG_LEVEL) -> logging.Logger:
    """Configure the service logger: dated file in LOG_DIR, console on a TTY."""
    logger = logging.getLogger("nudge")
    logger.setLevel(level)
    logger.handlers.clear()
    logger.filters.clear()
    logger.addFilter(SanitizingFilter())

    log_file = LOG_DIR / f"nudge-{datetime.now():%Y-%m-%d}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(file_handler)

    if sys.stdout is not None and sys.stdout.isatty():
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


# Global logger instance
logger = setup_logging()
