"""Shared logging utilities.

Services call `configure_logging` once from their entrypoint so that:
- all services emit consistent fields (time, level, logger, request_id),
- log lines can optionally be emitted as one JSON object per line,
- log records are easy to correlate with the request that produced them.

Request correlation uses a context variable: the HTTP layer calls
`set_request_id` at the start of each request and every record logged while
handling it carries the same `request_id`.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from typing import Optional

_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")

TEXT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - [%(request_id)s] %(message)s"


def set_request_id(value: str) -> contextvars.Token:
    """Bind a request id to the current context.

    Returns:
        contextvars.Token: Pass to `reset_request_id` when the request ends.
    """
    return _request_id.set(value)


def reset_request_id(token: contextvars.Token) -> None:
    _request_id.reset(token)


def get_request_id() -> str:
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    """Attach the current request id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        return True


class JsonFormatter(logging.Formatter):
    """Render records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO", json_logs: bool = False, stream: Optional[object] = None) -> None:
    """Configure the root logger for a service process.

    Replaces any handlers already installed on the root logger so repeated
    calls (tests, reloads) do not duplicate output.

    Args:
        level: Log level name, e.g. "INFO" or "DEBUG".
        json_logs: Emit one JSON object per line instead of the text format.
        stream: Output stream; defaults to stderr.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(JsonFormatter() if json_logs else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())
