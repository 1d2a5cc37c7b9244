"""Structured JSON logging bound to the request and the patient being handled.

Event delivery runs outside the request (background tasks, Celery workers), so
``bind_log_context`` re-binds the originating request id and patient id around
it; log lines from a Telegram or Sheets failure then correlate with the HTTP
request that caused them.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from uuid import UUID

_request_id_ctx_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_patient_id_ctx_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "patient_id", default=None
)

_CONTEXT_FIELDS = ("request_id", "patient_id")
_RECORD_ATTRIBUTES = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

# Outbound clients log every request at INFO; only their warnings are kept.
_CHATTY_LOGGERS = ("httpx", "httpcore", "googleapiclient.discovery_cache")


class RequestContextFilter(logging.Filter):
    """Copy the bound request and patient ids onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_ctx_var.get()
        record.patient_id = _patient_id_ctx_var.get()
        return True


class JSONLogFormatter(logging.Formatter):
    """One JSON object per line; ``extra`` fields are merged at the top level."""

    def __init__(self, service: str = "clinic_intake") -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _CONTEXT_FIELDS:
            log_entry[name] = record.__dict__.get(name)

        for key, value in record.__dict__.items():
            if key in log_entry or key.startswith("_") or key in _RECORD_ATTRIBUTES:
                continue
            log_entry[key] = value

        if record.exc_info:
            log_entry["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


_configured = False


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_logging(level: int | str = logging.INFO, service: str = "clinic_intake") -> None:
    """Route the root logger (and uvicorn's) through the JSON formatter."""

    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONLogFormatter(service))
    handler.addFilter(RequestContextFilter())

    root_logger = logging.getLogger()
    root_logger.handlers = []
    root_logger.setLevel(_resolve_level(level))
    root_logger.addHandler(handler)

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(logger_name)
        logger.handlers = []
        logger.propagate = True

    for logger_name in _CHATTY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    _configured = True


def set_patient_context(patient_id: UUID | str | None) -> None:
    """Bind the patient identifier to the current logging context."""

    _patient_id_ctx_var.set(None if patient_id is None else str(patient_id))


@contextmanager
def bind_log_context(
    request_id: str | None = None, patient_id: UUID | str | None = None
) -> Iterator[None]:
    """Temporarily bind ids for work that runs outside the originating request."""

    request_token = _request_id_ctx_var.set(request_id)
    patient_token = _patient_id_ctx_var.set(None if patient_id is None else str(patient_id))
    try:
        yield
    finally:
        _patient_id_ctx_var.reset(patient_token)
        _request_id_ctx_var.reset(request_token)


def get_request_id() -> str:
    """Return the request id bound to the current context."""

    return _request_id_ctx_var.get() or "unknown"


__all__ = [
    "JSONLogFormatter",
    "RequestContextFilter",
    "bind_log_context",
    "configure_logging",
    "get_request_id",
    "set_patient_context",
    "_patient_id_ctx_var",
    "_request_id_ctx_var",
]
