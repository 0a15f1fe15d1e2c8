"""
Log event sinks for couchdb-log-sink.

Sinks are responsible for persisting or forwarding log events.
"""

from couchdb_log_sink.sinks.base import LogEventSink
from couchdb_log_sink.sinks.couchdb import CouchDBSink, couchdb_sink
from couchdb_log_sink.sinks.jsonl import JsonlFileSink
from couchdb_log_sink.sinks.memory import MemorySink

__all__ = [
    "CouchDBSink",
    "JsonlFileSink",
    "LogEventSink",
    "MemorySink",
    "couchdb_sink",
]
