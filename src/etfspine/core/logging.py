"""
Structured logging for etfspine.

Service calls, cascades and migration batches log structlog events with
key/value context (collection, document id, counts), so a migration run can
be followed from its log alone. Document payloads attached to an event are
shortened to their ``_id`` and field names, and decimals and dates are
rendered the way documents store them.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="etfspine")
            │
            ├── TimeStamper(iso)
            ├── merge_contextvars          LogContext values (migration_id, ...)
            ├── add_log_level / add_logger_name
            ├── _add_service_metadata      service.name, service.version
            ├── _summarise_documents       document / raw_data → {_id, fields}
            ├── _stringify_values          Decimal, date, datetime → str
            ├── _ecs_field_names           JSON only: @timestamp, log.level
            └── JSONRenderer | ConsoleRenderer   → stderr

Examples:
    >>> from etfspine.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> get_logger(__name__).debug("source_opened", url="sqlite:///funds.db")

Tags:
    logging, structlog, observability, etfspine
"""

from __future__ import annotations

import datetime
import logging
import sys
from decimal import Decimal
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from etfspine import __version__

# Event keys that may carry a whole document.
DOCUMENT_KEYS = ("document", "raw_data")

_service_name = "etfspine"


def _add_service_metadata(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service.name", _service_name)
    event_dict.setdefault("service.version", __version__)
    return event_dict


def _summarise_documents(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    for key in DOCUMENT_KEYS:
        value = event_dict.get(key)
        if isinstance(value, dict):
            event_dict[key] = {"_id": value.get("_id"), "fields": sorted(k for k in value if k != "_id")}
    return event_dict


def _stringify_values(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
        elif isinstance(value, (datetime.date, datetime.datetime)):
            event_dict[key] = value.isoformat()
    return event_dict


def _ecs_field_names(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Rename ``timestamp``/``level`` to their ECS names."""
    for old, new in (("timestamp", "@timestamp"), ("level", "log.level")):
        if old in event_dict:
            event_dict[new] = event_dict.pop(old)
    return event_dict


def _processors(json_format: bool, add_timestamp: bool) -> list[Processor]:
    chain: list[Processor] = []
    if add_timestamp:
        chain.append(structlog.processors.TimeStamper(fmt="iso"))
    chain += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
        _summarise_documents,
        _stringify_values,
    ]
    if json_format:
        chain += [_ecs_field_names, structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return chain


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "etfspine",
    add_timestamp: bool = True,
) -> None:
    """Route structlog events through stdlib logging to stderr.

    Args:
        level: Minimum level name (``DEBUG`` ... ``CRITICAL``).
        json_format: JSON lines when True, coloured console output when False;
            None picks JSON unless stderr is a terminal.
        service: Value of the ``service.name`` field.
        add_timestamp: Stamp every event with an ISO-8601 time.
    """
    global _service_name
    _service_name = service
    numeric_level = logging.getLevelName(level.upper())
    if json_format is None:
        json_format = not sys.stderr.isatty()

    structlog.configure(
        processors=_processors(json_format, add_timestamp),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level, force=True)
    # SQL echo only when asked for at DEBUG.
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if numeric_level <= logging.DEBUG else logging.WARNING
    )


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def bind_context(**values: Any) -> None:
    """Attach *values* to every later event in this context."""
    structlog.contextvars.bind_contextvars(**values)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind values for the length of a ``with`` block.

    Leaving the block restores whatever the keys held before, so nested
    contexts (a migration run around a per-collection step) unwind cleanly::

        with LogContext(migration_id=run_id):
            with LogContext(collection="etfs"):
                logger.info("batch_loaded", rows=500)
    """

    def __init__(self, **values: Any) -> None:
        self._values = values
        self._tokens: Any = None

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._values)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)


__all__ = [
    "DOCUMENT_KEYS",
    "LogContext",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "unbind_context",
]
