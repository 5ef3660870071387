"""
Structured logging helpers and request correlation.

Every log line emitted while a request is in flight carries that request's
correlation ID through :class:`RequestIdFilter`.
"""

from __future__ import annotations

import json
import logging
import os
from contextvars import ContextVar
from typing import Any

_NO_REQUEST = "-"

_request_id_var: ContextVar[str] = ContextVar("request_id", default=_NO_REQUEST)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [%(request_id)s] %(message)s"


def get_request_id() -> str:
    return _request_id_var.get()


def bind_request_id(request_id: str) -> Any:
    """
    Bind ``request_id`` to the current context. Returns a reset token.
    """

    return _request_id_var.set(request_id)


def reset_request_id(token: Any) -> None:
    _request_id_var.reset(token)


class RequestIdFilter(logging.Filter):
    """
    Inject the current correlation ID as ``record.request_id``.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = _request_id_var.get()
        return True


def configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format=LOG_FORMAT,
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc_info: Any = None,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.

    ``exc_info`` is forwarded to the logger so tracebacks follow the line.
    """

    payload = {"event": event, "requestId": _request_id_var.get(), **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True), exc_info=exc_info)
