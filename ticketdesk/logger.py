"""Process-wide structured logger built on the standard logging module."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Union

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "dpanic": logging.CRITICAL,
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
}


class _Formatter(logging.Formatter):
    def __init__(self, production: bool) -> None:
        super().__init__()
        self.production = production

    def format(self, record: logging.LogRecord) -> str:
        fields = dict(getattr(record, "fields", None) or {})
        if self.production:
            stamp = datetime.fromtimestamp(record.created, timezone.utc)
            entry = {
                "level": record.levelname.lower(),
                "timestamp": stamp.isoformat(timespec="milliseconds"),
                "msg": record.getMessage(),
                **fields,
            }
            return json.dumps(entry, ensure_ascii=False, default=str)
        stamp = datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds")
        line = f"{stamp}\t{record.levelname}\t{record.getMessage()}"
        if fields:
            line += "\t" + json.dumps(fields, ensure_ascii=False, default=str)
        return line


class _FieldsAdapter(logging.LoggerAdapter):
    """Adapter that attaches a fixed set of fields to every record."""

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        extra["fields"] = {**(self.extra or {}), **extra.get("fields", {})}
        return msg, kwargs


def new_logger(env: str) -> logging.Logger:
    """Build a logger for the given environment ("production" or anything else)."""
    production = env == "production"
    logger = logging.getLogger(f"ticketdesk.{'production' if production else 'development'}")
    logger.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_Formatter(production))
    logger.addHandler(handler)
    logger.propagate = False
    default = logging.INFO if production else logging.DEBUG
    logger.setLevel(_LEVELS.get(os.environ.get("LOG_LEVEL", "").lower(), default))
    return logger


_current: LoggerLike = new_logger("development")


def get() -> LoggerLike:
    """Return the process-wide logger."""
    return _current


def set_logger(logger: LoggerLike) -> None:
    """Replace the process-wide logger."""
    global _current
    if not isinstance(logger, (logging.Logger, logging.LoggerAdapter)):
        raise TypeError(f"expected a logger, got {type(logger).__name__}")
    _current = logger


def info(msg: str, **kwargs: Any) -> None:
    _current.info(msg, extra={"fields": kwargs})


def error(msg: str, **kwargs: Any) -> None:
    _current.error(msg, extra={"fields": kwargs})


def debug(msg: str, **kwargs: Any) -> None:
    _current.debug(msg, extra={"fields": kwargs})


def warn(msg: str, **kwargs: Any) -> None:
    _current.warning(msg, extra={"fields": kwargs})


def fatal(msg: str, **kwargs: Any) -> None:
    """Log at critical level and terminate the process."""
    _current.critical(msg, extra={"fields": kwargs})
    sync()
    sys.exit(1)


def with_fields(**kwargs: Any) -> logging.LoggerAdapter:
    """Return a logger that adds the given fields to every record."""
    return _FieldsAdapter(_current, kwargs)


def sync() -> None:
    """Flush every handler of the current logger."""
    base = _current.logger if isinstance(_current, logging.LoggerAdapter) else _current
    for handler in base.handlers:
        handler.flush()