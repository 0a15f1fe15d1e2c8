"""
Shared fixtures for couchdb-log-sink tests.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from couchdb_log_sink import CouchDBSink, CouchDBSinkConfig, LogEvent, MemorySink

# 17:04:25.486390 at UTC+2
FIXED_TIMESTAMP = datetime(2020, 9, 2, 17, 4, 25, 486390, tzinfo=timezone(timedelta(hours=2)))
FIXED_LOCAL_TEXT = "2020-09-02T17:04:25.4863900+02:00"
FIXED_UTC_TEXT = "2020-09-02T15:04:25.4863900Z"

DATABASE_URL = "http://couch.local:5984/logs"


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request and answers with a fixed status."""

    def __init__(self, status_code: int = 201) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = status_code
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=[{"ok": True}])


@pytest.fixture
def database_url() -> str:
    """URL of the fake CouchDB database."""
    return DATABASE_URL


@pytest.fixture
def fixed_timestamp() -> datetime:
    """Timestamp stamped on events built by make_event."""
    return FIXED_TIMESTAMP


@pytest.fixture
def fixed_local_text() -> str:
    """Round-trip text of fixed_timestamp."""
    return FIXED_LOCAL_TEXT


@pytest.fixture
def fixed_utc_text() -> str:
    """Round-trip UTC text of fixed_timestamp."""
    return FIXED_UTC_TEXT


@pytest.fixture
def make_transport() -> Callable[..., RecordingTransport]:
    """Factory for recording transports answering with a given status."""
    return RecordingTransport


@pytest.fixture
def memory_sink() -> MemorySink:
    """Create a fresh memory sink for testing."""
    return MemorySink()


@pytest.fixture
def make_event() -> Callable[..., LogEvent]:
    """Factory for events stamped with FIXED_TIMESTAMP."""

    def factory(template: str = "Hello {World}!", properties: dict | None = None, **kwargs) -> LogEvent:
        kwargs.setdefault("timestamp", FIXED_TIMESTAMP)
        return LogEvent.create(template, properties, **kwargs)

    return factory


@pytest.fixture
def transport(make_transport: Callable[..., RecordingTransport]) -> RecordingTransport:
    """Transport answering 201 Created."""
    return make_transport()


@pytest.fixture
def sink_config() -> CouchDBSinkConfig:
    """Standard test sink config."""
    return CouchDBSinkConfig(database_url=DATABASE_URL)


@pytest.fixture
def couch_sink(sink_config: CouchDBSinkConfig, transport: RecordingTransport):
    """CouchDBSink wired to the recording transport, closed after the test."""
    sink = CouchDBSink(sink_config, transport=transport)
    yield sink
    sink.close()
