"""
Base sink interface for log events.
"""

from typing import Protocol, runtime_checkable

from couchdb_log_sink.events import LogEvent


@runtime_checkable
class LogEventSink(Protocol):
    """
    Protocol for log event sinks.

    Implementations are responsible for persisting or forwarding log events.
    Examples: a CouchDB database, a JSONL file, in-memory storage for tests.
    """

    def emit(self, event: LogEvent) -> None:
        """
        Emit a log event to the sink.

        Args:
            event: The structured log event.
        """
        ...
