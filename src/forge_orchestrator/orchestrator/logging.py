"""Structured logging configuration.

Standard library logging, rendered either as JSON lines or as plain text.
Records emitted while a run is executing carry the run's identifiers, bound with
``bind_context`` and stamped on by ``ContextFilter``.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Literal, TextIO

LogFormat = Literal["json", "plain"]

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s%(context)s"
PLAIN_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord has; anything else arrived through ``extra``.
_STANDARD_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "context"}

_context: ContextVar[dict[str, str]] = ContextVar("forge_log_context", default={})

_QUIET_LOGGERS = ("openai", "httpx", "httpcore", "urllib3")


@contextmanager
def bind_context(**fields: str) -> Iterator[None]:
    """Attach ``fields`` to every record logged inside the block."""

    token = _context.set({**_context.get(), **fields})
    try:
        yield
    finally:
        _context.reset(token)


def current_context() -> dict[str, str]:
    return dict(_context.get())


class ContextFilter(logging.Filter):
    """Copies bound context onto records without overriding explicit extras."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        bound = _context.get()
        for key, value in bound.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        record.context = "".join(f" {k}={v}" for k, v in sorted(bound.items()))
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record; extras go under ``extra``."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(
    level: str, *, fmt: LogFormat = "json", stream: TextIO | None = None
) -> logging.Handler:
    """Replace the root handlers with one stderr handler in the requested format."""

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream=stream or sys.stderr)
    handler.addFilter(ContextFilter())
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATEFMT))

    root.addHandler(handler)
    root.setLevel(level.upper())

    # HTTP client libraries are chatty at DEBUG.
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.INFO))
    return handler
