"""
Self-diagnostics channel.

Failures inside the sink are reported to a dedicated logger rather than
through the sink itself, so that a broken CouchDB connection can never
turn into logging about logging. SinkHandler ignores records from this
package's loggers, from the HTTP transport's loggers, and any record
raised on a thread while it is posting to CouchDB, for the same reason.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Iterator

PACKAGE_LOGGER_NAME = "couchdb_log_sink"
SELFLOG_NAME = PACKAGE_LOGGER_NAME + ".selflog"

# Loggers of the HTTP stack used for delivery
TRANSPORT_LOGGER_NAMES = ("httpx", "httpcore")

_selflog = logging.getLogger(SELFLOG_NAME)
_delivery_state = threading.local()


def get_selflog() -> logging.Logger:
    """Return the self-diagnostics logger."""
    return _selflog


def report(message: str, *args: object, exc_info: BaseException | None = None) -> None:
    """Write an ERROR record to the self-diagnostics logger."""
    _selflog.error(message, *args, exc_info=exc_info)


def report_delivery_error(exc: BaseException) -> None:
    """Default error hook for fire-and-forget deliveries."""
    report("Failed to deliver log events to CouchDB: %s", exc, exc_info=exc)


@contextlib.contextmanager
def delivering() -> Iterator[None]:
    """Mark the current thread as posting to CouchDB for the duration of the block."""
    previous = getattr(_delivery_state, "active", False)
    _delivery_state.active = True
    try:
        yield
    finally:
        _delivery_state.active = previous


def in_delivery() -> bool:
    """Return True if the current thread is inside a delivering() block."""
    return getattr(_delivery_state, "active", False)


def _is_under(name: str, parent: str) -> bool:
    return name == parent or name.startswith(parent + ".")


def is_internal_record(record: logging.LogRecord) -> bool:
    """Return True if ``record`` was produced by the sink's own delivery machinery."""
    if in_delivery():
        return True
    name = record.name
    if _is_under(name, PACKAGE_LOGGER_NAME):
        return True
    return any(_is_under(name, transport) for transport in TRANSPORT_LOGGER_NAMES)
