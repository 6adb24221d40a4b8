from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import APP_DIR

LOG_DIR = APP_DIR / "logs"
LOG_FILE = LOG_DIR / "connect-bot.log"
# Events are handled on a worker thread, the transport runs on its own.
LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"


def setup_logging(verbose: bool = False, console: bool = False) -> logging.Logger:
    """Route ``connect_bot`` logs to a rotating file, and to stderr when asked."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger("connect_bot")
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    handlers = [RotatingFileHandler(LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8")]
    if verbose or console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "connect_bot")
