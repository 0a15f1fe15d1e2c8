"""
couchdb-log-sink: ship structured log events to CouchDB.

Encodes log events as compact JSON documents and posts them to a CouchDB
database through its _bulk_docs API.
"""

__version__ = "0.1.0"

from couchdb_log_sink.config import CouchDBSinkConfig
from couchdb_log_sink.errors import (
    ConfigurationError,
    CouchSinkError,
    DeliveryFailure,
    TransportError,
)
from couchdb_log_sink.events import (
    DictionaryValue,
    LogEvent,
    LogLevel,
    ScalarValue,
    SequenceValue,
    StructureValue,
    capture_value,
)
from couchdb_log_sink.formatting import (
    CouchDocumentFormatter,
    JsonValueFormatter,
    encode_event,
    format_bulk_envelope,
)
from couchdb_log_sink.handler import SinkHandler
from couchdb_log_sink.sinks import (
    CouchDBSink,
    JsonlFileSink,
    LogEventSink,
    MemorySink,
    couchdb_sink,
)
from couchdb_log_sink.template import MessageTemplate, parse_template

__all__ = [
    "__version__",
    # Core
    "CouchDBSink",
    "CouchDBSinkConfig",
    "couchdb_sink",
    "SinkHandler",
    # Events
    "LogEvent",
    "LogLevel",
    "MessageTemplate",
    "parse_template",
    "capture_value",
    "ScalarValue",
    "SequenceValue",
    "StructureValue",
    "DictionaryValue",
    # Encoding
    "CouchDocumentFormatter",
    "JsonValueFormatter",
    "encode_event",
    "format_bulk_envelope",
    # Sinks
    "LogEventSink",
    "JsonlFileSink",
    "MemorySink",
    # Errors
    "CouchSinkError",
    "ConfigurationError",
    "DeliveryFailure",
    "TransportError",
]
