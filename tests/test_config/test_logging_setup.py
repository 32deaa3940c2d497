import json
import logging

import structlog

from scanchat.config import LoggingConfig
from scanchat.logging import AIOHTTP_LOGGERS, bind_request_context, configure_logging, get_logger


def _reset() -> None:
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    for name in AIOHTTP_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)


def test_json_format_carries_request_context(capsys):
    try:
        configure_logging(LoggingConfig(level="INFO", format="json"))
        bind_request_context(request_id="abc123", model="gpt-4")
        logger = get_logger("scanchat.tests")
        logger.info("Chat handled", status=200)
        logger.debug("Not shown")
    finally:
        _reset()

    lines = [line for line in capsys.readouterr().err.splitlines() if line.startswith("{")]
    assert len(lines) == 1
    event = json.loads(lines[0])
    assert event["event"] == "Chat handled"
    assert event["level"] == "info"
    assert event["request_id"] == "abc123"
    assert event["model"] == "gpt-4"
    assert event["status"] == 200
    assert event["timestamp"].endswith("Z")


def test_aiohttp_loggers_follow_configured_level():
    try:
        configure_logging(LoggingConfig(level="warning", format="json"))
        levels = [logging.getLogger(name).level for name in AIOHTTP_LOGGERS]
    finally:
        _reset()

    assert levels == [logging.WARNING] * len(AIOHTTP_LOGGERS)


def test_unknown_level_falls_back_to_info():
    try:
        configure_logging(LoggingConfig(level="chatty", format="console"))
        level = logging.getLogger("aiohttp.access").level
    finally:
        _reset()

    assert level == logging.INFO
