"""Structured logging for scanchat.

Application events go through structlog. aiohttp logs access lines and
server errors through the standard library, so those loggers are sent
to the same stream at the same level.
"""

import logging
import sys

import structlog
from structlog.typing import Processor

from scanchat.config import LoggingConfig, get_config

AIOHTTP_LOGGERS = ("aiohttp.access", "aiohttp.server", "aiohttp.web")


def _level(name: str) -> int:
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else logging.INFO


def _renderer(fmt: str) -> Processor:
    if fmt == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    return structlog.processors.JSONRenderer()


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Set up structlog and aiohttp's loggers on stderr.

    ``config`` defaults to the ``logging`` section of the global config.
    Unknown level names fall back to INFO.
    """
    settings = config or get_config().logging
    level = _level(settings.level)

    logging.basicConfig(stream=sys.stderr, level=level, format="%(name)s %(levelname)s %(message)s")
    for name in AIOHTTP_LOGGERS:
        logging.getLogger(name).setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _renderer(settings.format),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def bind_request_context(**values: object) -> None:
    """Attach per-request values (request id, model, tool) to every log line."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**values)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
