import logging

from connect_bot import logging as logging_mod
from connect_bot.logging import get_logger, setup_logging


def test_logs_go_to_rotating_file():
    setup_logging()
    get_logger("connect_bot.bot").info("Sent connect to %s", "Bob")
    for handler in logging.getLogger("connect_bot").handlers:
        handler.flush()
    text = logging_mod.LOG_FILE.read_text(encoding="utf-8")
    assert "Sent connect to Bob" in text
    assert "[MainThread] connect_bot.bot" in text
    assert logging_mod.LOG_FILE.name == "connect-bot.log"


def test_console_adds_stream_handler_once():
    setup_logging(console=True)
    setup_logging(console=True)
    handlers = logging.getLogger("connect_bot").handlers
    assert len(handlers) == 2
    assert logging.getLogger("connect_bot").level == logging.INFO


def test_verbose_enables_debug():
    logger = setup_logging(verbose=True)
    assert logger.level == logging.DEBUG
