"""Structured logging configuration for the live vote board.

JSON output for production, human-readable output for local development.
Log lines carry whatever context is bound at the time: the request's
correlation id, the active group and the reveal session being played.

Environment Variables:
    LOG_FORMAT: Set to "json" for JSON output, anything else for human-readable.
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR). Defaults to INFO.
"""

import copy
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from pythonjsonlogger import jsonlogger

LOG_FORMAT = os.getenv("LOG_FORMAT", "").lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Bound context fields, in the order the human-readable prefix shows them
CONTEXT_FIELDS = ("correlation_id", "group_id", "session_id")

_log_context: ContextVar[dict[str, Any] | None] = ContextVar("log_context", default=None)


def get_log_context() -> dict[str, Any]:
    """Fields bound in the current context."""
    return dict(_log_context.get() or {})


def _merged(fields: dict[str, Any]) -> dict[str, Any]:
    context = get_log_context()
    for key, value in fields.items():
        if value is None:
            context.pop(key, None)
        else:
            context[key] = value
    return context


def bind_log_context(**fields: Any) -> None:
    """Bind fields for the rest of the current context. None unbinds a field.

    Tasks created afterwards inherit the bound fields.
    """
    _log_context.set(_merged(fields))


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Bind fields for the duration of a block."""
    token = _log_context.set(_merged(fields))
    try:
        yield
    finally:
        _log_context.reset(token)


def get_correlation_id() -> str | None:
    return get_log_context().get("correlation_id")


def set_correlation_id(correlation_id: str | None) -> None:
    bind_log_context(correlation_id=correlation_id)


def set_active_group(group_id: str | None) -> None:
    bind_log_context(group_id=group_id)


def _prefix(context: dict[str, Any]) -> str:
    parts = []
    if "correlation_id" in context:
        parts.append(f"[{str(context['correlation_id'])[:8]}]")
    if "group_id" in context:
        parts.append(f"[group:{context['group_id']}]")
    if "session_id" in context:
        parts.append(f"[reveal:{context['session_id']}]")
    return " ".join(parts)


class ContextAwareJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that adds the bound log context to every record."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["message"] = record.getMessage()
        log_record.update(
            (key, value) for key, value in get_log_context().items() if key in CONTEXT_FIELDS
        )


class ContextAwareFormatter(logging.Formatter):
    """Human-readable formatter that prefixes the bound log context."""

    def format(self, record: logging.LogRecord) -> str:
        prefix = _prefix(get_log_context())
        if not prefix:
            return super().format(record)

        # Work on a copy so other handlers see the plain message
        record = copy.copy(record)
        record.msg = f"{prefix} {record.getMessage()}"
        record.args = ()
        return super().format(record)


def setup_logging() -> None:
    """Configure the root logger. Call once at startup."""
    level = getattr(logging, LOG_LEVEL, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if LOG_FORMAT == "json":
        handler.setFormatter(
            ContextAwareJsonFormatter(
                fmt="%(timestamp)s %(level)s %(logger)s %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S%z",
            )
        )
    else:
        handler.setFormatter(
            ContextAwareFormatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    logging.getLogger(__name__).info(
        "Logging configured. Format: %s, Level: %s",
        "json" if LOG_FORMAT == "json" else "human-readable",
        LOG_LEVEL,
    )
