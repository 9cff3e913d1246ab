"""Logging configuration for the Jokes API."""

import logging
import sys

from .config import get_settings

# Attributes every LogRecord carries; anything else arrived through extra={}.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class ContextFormatter(logging.Formatter):
    """Pipe-separated console format with extra={} fields appended as key=value."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        extras = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if extras:
            message += " | " + " ".join(f"{k}={v}" for k, v in sorted(extras.items()))
        return message


def configure_logging():
    """Configure console logging. Call once at startup, before anything logs."""
    settings = get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ContextFormatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root_logger.addHandler(handler)

    for noisy in ("sqlalchemy.engine", "sqlalchemy.pool", "httpx", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={"level": logging.getLevelName(level)},
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name.

    Usage:
        logger = get_logger(__name__)
        logger.info("Joke deleted", extra={"actor_id": 3, "joke_id": 5})
    """
    return logging.getLogger(name)
