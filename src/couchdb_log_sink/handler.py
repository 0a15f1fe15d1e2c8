"""
Bridge from the standard library logging module to log event sinks.

Attach a SinkHandler to any logger to turn its records into structured
LogEvents. Message templates use ``{Name}`` holes bound to a mapping
passed as the single logging argument:

    log.info("Order {OrderId} shipped to {City}", {"OrderId": 42, "City": "Oslo"})

Additional properties can be attached with ``extra={"properties": {...}}``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from couchdb_log_sink.events import LogEvent, LogLevel
from couchdb_log_sink.selflog import is_internal_record
from couchdb_log_sink.sinks.base import LogEventSink


class SinkHandler(logging.Handler):
    """
    logging.Handler that forwards records to a LogEventSink.

    Records emitted by this package's own loggers, by the httpx/httpcore
    transport loggers, or on a thread while it is posting to CouchDB are
    ignored, so a sink's own traffic can never feed back into itself.

    Args:
        sink: Destination sink.
        level: Handler level (default NOTSET).
        close_sink: Whether close() also closes the sink (default False).
    """

    def __init__(
        self,
        sink: LogEventSink,
        level: int | str = logging.NOTSET,
        *,
        close_sink: bool = False,
    ) -> None:
        super().__init__(level)
        self._sink = sink
        self._close_sink = close_sink

    @property
    def sink(self) -> LogEventSink:
        """Return the destination sink."""
        return self._sink

    def emit(self, record: logging.LogRecord) -> None:
        if is_internal_record(record):
            return
        try:
            self._sink.emit(self.to_event(record))
        except Exception:
            self.handleError(record)

    @staticmethod
    def to_event(record: logging.LogRecord) -> LogEvent:
        """Convert a LogRecord into a LogEvent."""
        properties: dict[str, Any] = {}
        if isinstance(record.args, Mapping) and record.args:
            template = str(record.msg)
            properties.update(record.args)
        else:
            template = record.getMessage()

        extra = getattr(record, "properties", None)
        if isinstance(extra, Mapping):
            properties.update(extra)

        exception = record.exc_info[1] if record.exc_info else None

        return LogEvent.create(
            template,
            properties,
            level=LogLevel.from_logging(record.levelno),
            exception=exception,
            timestamp=datetime.fromtimestamp(record.created).astimezone(),
        )

    def close(self) -> None:
        try:
            if self._close_sink:
                close = getattr(self._sink, "close", None)
                if callable(close):
                    close()
        finally:
            super().close()
