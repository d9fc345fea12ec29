"""Structured logging configuration for the position relay.

Every relay module logs through ``get_logger(__name__)``. Cycle-scoped lines
carry context fields passed via ``extra`` (or bound once with
``logger.with_context``), which both formatters render:

    2026-10-17 09:30:00.123 [INFO    ] [engine        ] [cycle=12 entry_id=43] Relayed entry 43

JSON output (``RELAY_LOG_JSON=true``) emits one object per line with the same
fields plus ``error_kind`` and ``classification`` when present.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import UTC, datetime
from typing import Any

# Extra fields rendered by both formatters when present on a record
CONTEXT_FIELDS = ("cycle", "entry_id", "attempt")

# Extra fields only the JSON formatter emits
JSON_ONLY_FIELDS = ("error_kind", "classification")

# Third-party loggers that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def _component(record: logging.LogRecord) -> str:
    """Last dotted segment of the logger name ("position_relay.engine" -> "engine")."""
    return record.name.rsplit(".", 1)[-1]


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=UTC)


def _extra_fields(record: logging.LogRecord, names: tuple[str, ...]) -> dict[str, Any]:
    return {name: getattr(record, name) for name in names if hasattr(record, name)}


class StructuredFormatter(logging.Formatter):
    """Human-readable single-line formatter with a bracketed context block."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with structured output.

        Args:
            record: The log record to format.

        Returns:
            Formatted log string.
        """
        timestamp = _record_time(record).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        parts = [timestamp, f"[{record.levelname:8}]", f"[{_component(record):14}]"]

        context = _extra_fields(record, CONTEXT_FIELDS)
        if context:
            parts.append("[" + " ".join(f"{k}={v}" for k, v in context.items()) + "]")

        parts.append(record.getMessage())
        if record.exc_info:
            parts.append(self.formatException(record.exc_info))
        return " ".join(parts)


class JSONFormatter(logging.Formatter):
    """Formatter that outputs JSON log messages for machine parsing."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON.

        Args:
            record: The log record to format.

        Returns:
            JSON-formatted log string.
        """
        log_data: dict[str, Any] = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "component": _component(record),
            "message": record.getMessage(),
        }
        log_data.update(_extra_fields(record, CONTEXT_FIELDS + JSON_ONLY_FIELDS))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ContextAdapter(logging.LoggerAdapter[logging.Logger]):
    """Logger adapter that binds context fields to every message.

    Fields passed in a call's own ``extra`` take precedence over bound ones.
    """

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        """Merge the bound context into the call's ``extra``.

        Args:
            msg: The log message.
            kwargs: Keyword arguments for the log call.

        Returns:
            Tuple of (message, kwargs) with context added.
        """
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


class RelayLogger(logging.Logger):
    """Logger class installed for the relay, adding ``with_context``."""

    def with_context(self, **context: Any) -> ContextAdapter:
        """Bind context fields to a new adapter.

        Example:
            log = logger.with_context(cycle=12, entry_id=43)
            log.info("Relayed entry")

        Args:
            **context: Context fields to add to all log messages.

        Returns:
            ContextAdapter with the specified context.
        """
        return ContextAdapter(self, context)


logging.setLoggerClass(RelayLogger)


def get_logger(name: str) -> RelayLogger:
    """Get a logger with the custom RelayLogger class.

    Args:
        name: Logger name (typically __name__).

    Returns:
        RelayLogger instance.
    """
    return logging.getLogger(name)  # type: ignore[return-value]


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    replace_handlers: bool = True,
) -> None:
    """Configure the root logger for the relay process.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR). Unknown values
            fall back to INFO.
        json_format: If True, output JSON-formatted logs.
        replace_handlers: If True, remove existing root handlers first.
    """
    numeric_level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    if replace_handlers:
        for existing in root_logger.handlers[:]:
            root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if json_format else StructuredFormatter())
    root_logger.addHandler(handler)

    logging.getLogger("position_relay").setLevel(numeric_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


__all__ = [
    "ContextAdapter",
    "JSONFormatter",
    "RelayLogger",
    "StructuredFormatter",
    "get_logger",
    "setup_logging",
]
