"""
In-memory sink for testing and development.
"""

from couchdb_log_sink.events import LogEvent
from couchdb_log_sink.formatting import encode_event


class MemorySink:
    """
    In-memory log sink that stores events in a list.

    Useful for testing and development. Not intended for production use.
    """

    def __init__(self) -> None:
        self.events: list[LogEvent] = []

    def emit(self, event: LogEvent) -> None:
        """
        Store a log event in memory.

        Args:
            event: The log event.
        """
        self.events.append(event)

    def documents(self) -> list[str]:
        """Return every stored event encoded as a CouchDB document."""
        return [encode_event(e) for e in self.events]

    def clear(self) -> None:
        """Clear all stored events."""
        self.events.clear()

    def __len__(self) -> int:
        """Return the number of stored events."""
        return len(self.events)
