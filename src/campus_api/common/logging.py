"""Process logging for the control plane.

``CAMPUS_LOG_FORMAT`` picks between a single-line console layout and JSON
lines. Both carry the request correlation id bound by
:class:`~campus_api.common.middleware.RequestContextMiddleware` plus any
``extra`` fields, which callers build with :func:`log_context`.
"""

from __future__ import annotations

import json
import logging
import logging.config
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from campus_api.settings import Settings

_correlation_id: ContextVar[str | None] = ContextVar("campus_correlation_id", default=None)

# Everything a bare LogRecord carries is metadata, not a structured field.
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "correlation_id",
    "color_message",
}

# Identifier fields are omitted rather than logged as null.
_IDENTIFIER_FIELDS = frozenset({"user_id", "role_id", "panel_id", "capability_id"})

_ROUTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "alembic")
_SQL_LOGGERS = ("sqlalchemy", "sqlalchemy.engine", "sqlalchemy.pool")
REQUEST_LOGGER = "campus_api.request"


class _StructuredFormatter(logging.Formatter):
    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=UTC)
        return f"{stamp:%Y-%m-%dT%H:%M:%S}.{int(record.msecs):03d}Z"

    @staticmethod
    def fields(record: logging.LogRecord) -> dict[str, Any]:
        return {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED and not key.startswith("_")
        }

    @staticmethod
    def correlation(record: logging.LogRecord) -> str:
        cid = getattr(record, "correlation_id", None) or _correlation_id.get() or "-"
        record.correlation_id = cid
        return cid


class ConsoleLogFormatter(_StructuredFormatter):
    """``<time> <LEVEL> <logger> [cid=<id>] <event> key=value ...``"""

    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s %(levelname)-5s %(name)s [cid=%(correlation_id)s] %(message)s"
        )

    def format(self, record: logging.LogRecord) -> str:
        self.correlation(record)
        line = super().format(record)
        pairs = " ".join(
            f"{key}={'null' if value is None else value}"
            for key, value in sorted(self.fields(record).items())
        )
        return f"{line} {pairs}" if pairs else line


class JsonLogFormatter(_StructuredFormatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "service": "campus-api",
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": self.correlation(record),
            **self.fields(record),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, separators=(",", ":"))


def setup_logging(settings: Settings) -> None:
    """Route every logger through one stderr handler on the root logger.

    Server and migration loggers propagate to root; SQL logging stays at
    WARNING unless ``CAMPUS_DATABASE_LOG_LEVEL`` asks for more.
    """

    formatter = JsonLogFormatter if settings.log_format == "json" else ConsoleLogFormatter
    sql_level = settings.database_log_level or "WARNING"
    loggers: dict[str, dict[str, Any]] = {
        name: {"handlers": [], "propagate": True, "level": "NOTSET"} for name in _ROUTED_LOGGERS
    }
    loggers["uvicorn"]["level"] = settings.effective_api_log_level
    loggers[REQUEST_LOGGER] = {
        "handlers": [],
        "propagate": True,
        "level": settings.effective_request_log_level,
    }
    for name in _SQL_LOGGERS:
        loggers[name] = {"handlers": [], "propagate": True, "level": sql_level}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"campus": {"()": formatter}},
            "handlers": {"stream": {"class": "logging.StreamHandler", "formatter": "campus"}},
            "root": {"handlers": ["stream"], "level": settings.effective_api_log_level},
            "loggers": loggers,
        }
    )


def bind_request_context(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


def clear_request_context() -> None:
    _correlation_id.set(None)


def current_request_id() -> str | None:
    return _correlation_id.get()


def log_context(**fields: Any) -> dict[str, Any]:
    """Build an ``extra`` payload; UUIDs are stringified, unset identifiers dropped.

    Example::

        logger.info("panel.assign.success", extra=log_context(panel_id=panel.id, is_default=True))
    """

    return {
        key: str(value) if isinstance(value, UUID) else value
        for key, value in fields.items()
        if not (key in _IDENTIFIER_FIELDS and value is None)
    }


__all__ = [
    "ConsoleLogFormatter",
    "JsonLogFormatter",
    "REQUEST_LOGGER",
    "bind_request_context",
    "clear_request_context",
    "current_request_id",
    "log_context",
    "setup_logging",
]
