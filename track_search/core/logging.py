"""Structured logging for track-search.

Every record is one JSON object with timestamp, level, service,
correlation_id, module and message, followed by whatever the caller passed
through ``extra=`` (record_id, vector_count, latency_ms, ...).

Modules log through ``logging.getLogger(__name__)``; records propagate to
the ``track_search`` package logger configured by setup_structured_logging.
The correlation id is the request's X-Request-ID, carried in a contextvar so
it follows the request across awaits.

Level comes from TRACK_SEARCH_LOG_LEVEL unless given explicitly.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

SERVICE_NAME = "track-search"
PACKAGE_LOGGER = "track_search"
DEFAULT_LOG_FILE = "/var/log/track-search/app.log"
NO_CORRELATION_ID = "-"

_request_id: ContextVar[str | None] = ContextVar("track_search_request_id", default=None)

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime", "correlation_id"}


# =============================================================================
# Correlation ids
# =============================================================================


def set_correlation_id(correlation_id: str) -> None:
    """Bind a request id to the current context."""
    _request_id.set(correlation_id)


def get_correlation_id() -> str | None:
    return _request_id.get()


def clear_correlation_id() -> None:
    _request_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Stamp each record with the request id bound to the current context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


# =============================================================================
# Formatting
# =============================================================================


class JSONFormatter(logging.Formatter):
    """One JSON object per record: fixed fields first, then ``extra`` fields."""

    def __init__(self, service_name: str = SERVICE_NAME, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION_ID),
            "module": record.module,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and key not in entry
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # default=str keeps non-JSON extras (sets, exceptions) loggable
        return json.dumps(entry, ensure_ascii=False, default=str)


# =============================================================================
# Setup
# =============================================================================


def get_log_level_from_env(service_prefix: str = "TRACK_SEARCH") -> int:
    """Level named by ``<prefix>_LOG_LEVEL``; unknown names fall back to INFO."""
    name = os.environ.get(f"{service_prefix}_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _json_handler(handler: logging.Handler, service_name: str) -> logging.Handler:
    handler.setFormatter(JSONFormatter(service_name=service_name))
    handler.addFilter(CorrelationIdFilter())
    return handler


def _rotating_file(path: str, max_bytes: int = 10_485_760, backup_count: int = 5) -> RotatingFileHandler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        filename=path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )


def setup_structured_logging(
    service_name: str = SERVICE_NAME,
    log_file_path: str | None = DEFAULT_LOG_FILE,
    log_level: int | None = None,
    logger_name: str = PACKAGE_LOGGER,
) -> logging.Logger:
    """Send the package's logs to stdout (and optionally a rotating file) as JSON.

    Replaces any handlers already on the logger, so calling it twice does
    not duplicate output. An unwritable log file only disables file output.

    Args:
        service_name: Value of the ``service`` field in every record
        log_file_path: Rotating log file, or None for console only
        log_level: Explicit level; defaults to TRACK_SEARCH_LOG_LEVEL
        logger_name: Logger to configure (the package root by default)

    Returns:
        The configured logger
    """
    level = get_log_level_from_env() if log_level is None else log_level

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False
    logger.addHandler(_json_handler(logging.StreamHandler(sys.stdout), service_name))

    if log_file_path:
        try:
            logger.addHandler(_json_handler(_rotating_file(log_file_path), service_name))
        except OSError as e:
            logger.warning("File logging disabled, cannot write %s: %s", log_file_path, e)

    return logger
