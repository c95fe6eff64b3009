from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from datetime import datetime
from zoneinfo import ZoneInfo

LOGGER_NAME = "condemn"
SERVER_LOGGER_NAMES = ("uvicorn.error", "uvicorn.access")
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_SECRET_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    # sentry DSN public key: https://<key>@o0.ingest.sentry.io/1
    (re.compile(r"(?i)(https?://)([^:@/\s]+)(@)"), r"\1***\3"),
    # redis URL password: redis://user:<password>@host
    (re.compile(r"(?i)(rediss?://[^:@/\s]*:)([^@\s]+)(@)"), r"\1***\3"),
    (re.compile(r"(?i)(token=)([^&\s]+)"), r"\1***"),
    (re.compile(r"(?i)(api[_-]?key=)([^&\s]+)"), r"\1***"),
)


class TimezoneFormatter(logging.Formatter):
    """Render ``asctime`` in a fixed IANA zone instead of the host's local time."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        *,
        tz_name: str = "UTC",
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.tz = ZoneInfo(tz_name)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        moment = datetime.fromtimestamp(record.created, tz=self.tz)
        return moment.strftime(datefmt) if datefmt else moment.isoformat()


def _share_handlers(
    source: logging.Logger,
    names: Iterable[str],
    level: int,
) -> None:
    for name in names:
        server_logger = logging.getLogger(name)
        server_logger.handlers = list(source.handlers)
        server_logger.setLevel(level)
        server_logger.propagate = False


def setup_logging(log_level: str = "INFO", timezone: str = "UTC") -> logging.Logger:
    """Configure the ``condemn`` logger and route the HTTP server's loggers through it.

    Handlers that already carry a foreign formatter are left alone.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    if not logger.handlers:
        logger.addHandler(logging.StreamHandler())
    formatter = TimezoneFormatter(LOG_FORMAT, LOG_DATE_FORMAT, tz_name=timezone)
    for handler in logger.handlers:
        if handler.formatter is None or isinstance(handler.formatter, TimezoneFormatter):
            handler.setFormatter(formatter)

    _share_handlers(logger, SERVER_LOGGER_NAMES, level)
    return logger


def log_event(event: str, **fields: object) -> str:
    return json.dumps({"event": event, **fields}, ensure_ascii=False, sort_keys=True, default=str)


def redact_sensitive_text(value: object) -> str:
    text = str(value)
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text
