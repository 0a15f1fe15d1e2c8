"""
Tests for CouchDBSink.

HTTP traffic is served by httpx.MockTransport; no network access is needed.
"""

from __future__ import annotations

import base64
import json
import logging

import httpx
import pytest

from couchdb_log_sink import (
    ConfigurationError,
    CouchDBSink,
    CouchDBSinkConfig,
    DeliveryFailure,
    LogEventSink,
    LogLevel,
    SinkHandler,
    TransportError,
    couchdb_sink,
    encode_event,
)
from couchdb_log_sink.selflog import SELFLOG_NAME


class TestSend:
    """Verify the synchronous bulk post."""

    def test_posts_to_bulk_docs(self, couch_sink: CouchDBSink, transport, make_event, database_url: str) -> None:
        couch_sink.send([make_event()])

        assert len(transport.requests) == 1
        request = transport.requests[0]
        assert request.method == "POST"
        assert str(request.url) == database_url + "/_bulk_docs"

    def test_body_is_bulk_envelope(self, couch_sink: CouchDBSink, transport, make_event) -> None:
        event = make_event("Hello {World}!", {"World": "Earth"})
        couch_sink.send([event])

        body = transport.requests[0].content.decode("utf-8")
        assert body == '{"docs":[' + encode_event(event) + "]}"

    def test_content_type_header(self, couch_sink: CouchDBSink, transport, make_event) -> None:
        couch_sink.send([make_event()])
        assert transport.requests[0].headers["content-type"] == "application/json; charset=utf-8"

    def test_body_is_utf8(self, couch_sink: CouchDBSink, transport, make_event) -> None:
        couch_sink.send([make_event("Grüße {Name}", {"Name": "日本語"})])
        parsed = json.loads(transport.requests[0].content.decode("utf-8"))
        assert parsed["docs"][0]["Properties"] == {"Name": "日本語"}

    def test_lone_surrogates_sent_as_json_escapes(self, couch_sink: CouchDBSink, transport, make_event) -> None:
        """Undecodable file names (surrogateescape) must not break delivery."""
        couch_sink.send([make_event("File {Name}", {"Name": "bad\udcff.txt"})])

        content = transport.requests[0].content
        assert b"bad\\udcff.txt" in content
        parsed = json.loads(content)
        assert parsed["docs"][0]["Properties"] == {"Name": "bad\udcff.txt"}

    def test_no_auth_header_without_credentials(self, couch_sink: CouchDBSink, transport, make_event) -> None:
        couch_sink.send([make_event()])
        assert "authorization" not in transport.requests[0].headers

    def test_basic_auth_header(self, transport, make_event, database_url: str) -> None:
        config = CouchDBSinkConfig(database_url, username="admin", password="secret")
        with CouchDBSink(config, transport=transport) as sink:
            sink.send([make_event()])

        expected = "Basic " + base64.b64encode(b"admin:secret").decode("ascii")
        assert transport.requests[0].headers["authorization"] == expected

    def test_url_with_trailing_slash(self, transport, make_event, database_url: str) -> None:
        with CouchDBSink(CouchDBSinkConfig(database_url + "/"), transport=transport) as sink:
            sink.send([make_event()])
        assert str(transport.requests[0].url) == database_url + "/_bulk_docs"

    @pytest.mark.parametrize("status_code", [200, 201, 202])
    def test_success_statuses(self, make_transport, make_event, database_url: str, status_code: int) -> None:
        transport = make_transport(status_code)
        with CouchDBSink(CouchDBSinkConfig(database_url), transport=transport) as sink:
            sink.send([make_event()])
        assert len(transport.requests) == 1

    def test_server_error_raises_delivery_failure(self, make_transport, make_event, database_url: str) -> None:
        with CouchDBSink(CouchDBSinkConfig(database_url), transport=make_transport(500)) as sink:
            with pytest.raises(DeliveryFailure) as excinfo:
                sink.send([make_event()])

        assert excinfo.value.status_code == 500
        assert "500" in str(excinfo.value)
        assert "Internal Server Error" in str(excinfo.value)

    def test_unauthorized_raises_delivery_failure(self, make_transport, make_event, database_url: str) -> None:
        with CouchDBSink(CouchDBSinkConfig(database_url), transport=make_transport(401)) as sink:
            with pytest.raises(DeliveryFailure) as excinfo:
                sink.send([make_event()])
        assert excinfo.value.status_code == 401

    def test_connection_error_raises_transport_error(self, make_event, database_url: str) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with CouchDBSink(CouchDBSinkConfig(database_url), transport=httpx.MockTransport(refuse)) as sink:
            with pytest.raises(TransportError) as excinfo:
                sink.send([make_event()])

        assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


class TestEmit:
    """Verify fire-and-forget delivery."""

    def test_emit_posts_single_document(self, transport, make_event, database_url: str) -> None:
        sink = CouchDBSink(CouchDBSinkConfig(database_url), transport=transport)
        sink.emit(make_event())
        sink.close()

        assert len(transport.requests) == 1
        parsed = json.loads(transport.requests[0].content)
        assert len(parsed["docs"]) == 1

    def test_emit_returns_none(self, couch_sink: CouchDBSink, make_event) -> None:
        assert couch_sink.emit(make_event()) is None

    def test_failure_reaches_error_hook(self, make_transport, make_event, database_url: str) -> None:
        errors: list[BaseException] = []
        sink = CouchDBSink(
            CouchDBSinkConfig(database_url),
            transport=make_transport(500),
            on_error=errors.append,
        )
        sink.emit(make_event())
        sink.close()

        assert len(errors) == 1
        assert isinstance(errors[0], DeliveryFailure)
        assert errors[0].status_code == 500

    def test_failure_reported_on_selflog_by_default(
        self, make_transport, make_event, database_url: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        sink = CouchDBSink(CouchDBSinkConfig(database_url), transport=make_transport(500))
        with caplog.at_level(logging.ERROR, logger=SELFLOG_NAME):
            sink.emit(make_event())
            sink.close()

        records = [r for r in caplog.records if r.name == SELFLOG_NAME]
        assert len(records) == 1
        assert records[0].levelno == logging.ERROR
        assert isinstance(records[0].exc_info[1], DeliveryFailure)

    def test_failing_error_hook_is_reported(
        self, make_transport, make_event, database_url: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        def broken_hook(exc: BaseException) -> None:
            raise RuntimeError("hook broke")

        sink = CouchDBSink(
            CouchDBSinkConfig(database_url),
            transport=make_transport(503),
            on_error=broken_hook,
        )
        with caplog.at_level(logging.ERROR, logger=SELFLOG_NAME):
            sink.emit(make_event())
            sink.close()

        records = [r for r in caplog.records if r.name == SELFLOG_NAME]
        assert len(records) == 1
        assert isinstance(records[0].exc_info[1], RuntimeError)

    def test_events_below_minimum_level_dropped(self, transport, make_event, database_url: str) -> None:
        config = CouchDBSinkConfig(database_url, minimum_level=LogLevel.WARNING)
        with CouchDBSink(config, transport=transport) as sink:
            sink.emit(make_event(level=LogLevel.INFORMATION))
            sink.emit(make_event(level=LogLevel.ERROR))

        assert len(transport.requests) == 1
        parsed = json.loads(transport.requests[0].content)
        assert parsed["docs"][0]["Level"] == "Error"

    def test_emit_after_close_is_dropped(
        self, transport, make_event, database_url: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        sink = CouchDBSink(CouchDBSinkConfig(database_url), transport=transport)
        sink.close()
        with caplog.at_level(logging.ERROR, logger=SELFLOG_NAME):
            sink.emit(make_event())

        assert transport.requests == []
        assert any("closed" in r.getMessage() for r in caplog.records)

    def test_close_is_idempotent(self, transport, database_url: str) -> None:
        sink = CouchDBSink(CouchDBSinkConfig(database_url), transport=transport)
        sink.close()
        sink.close()
        assert sink.closed

    def test_conforms_to_protocol(self, couch_sink: CouchDBSink) -> None:
        assert isinstance(couch_sink, LogEventSink)


class TestRootLoggerHandler:
    """Verify a SinkHandler on the root logger never re-posts the sink's own traffic."""

    def test_one_application_record_posts_once(self, transport, database_url: str) -> None:
        root = logging.getLogger()
        previous_level = root.level
        sink = CouchDBSink(CouchDBSinkConfig(database_url), transport=transport)
        handler = SinkHandler(sink)
        root.addHandler(handler)
        root.setLevel(logging.INFO)
        try:
            logging.getLogger("app").info("Hello {World}!", {"World": "Earth"})
            sink.close()
        finally:
            root.removeHandler(handler)
            root.setLevel(previous_level)

        assert len(transport.requests) == 1
        (doc,) = json.loads(transport.requests[0].content)["docs"]
        assert doc["MessageTemplate"] == "Hello {World}!"

    def test_transport_records_ignored(self, memory_sink) -> None:
        handler = SinkHandler(memory_sink)
        for name in ("httpx", "httpcore.http11"):
            record = logging.LogRecord(name, logging.INFO, __file__, 1, "HTTP Request: POST", None, None)
            handler.emit(record)

        assert len(memory_sink) == 0

    def test_records_raised_during_delivery_ignored(self, memory_sink, make_event, database_url: str) -> None:
        """Any record logged on the posting thread mid-request is dropped."""
        handler = SinkHandler(memory_sink)
        other = logging.getLogger("couchdb_test.transport_plugin")

        def chatty(request: httpx.Request) -> httpx.Response:
            handler.emit(other.makeRecord(other.name, logging.INFO, __file__, 1, "sending", None, None))
            return httpx.Response(201)

        with CouchDBSink(CouchDBSinkConfig(database_url), transport=httpx.MockTransport(chatty)) as sink:
            sink.send([make_event()])

        handler.emit(other.makeRecord(other.name, logging.INFO, __file__, 1, "after", None, None))
        assert [e.message_template.text for e in memory_sink.events] == ["after"]


class TestEmitBatch:
    """Verify chunked batch delivery."""

    def test_batches_split_by_posting_limit(self, transport, make_event, database_url: str) -> None:
        config = CouchDBSinkConfig(database_url, batch_posting_limit=2)
        with CouchDBSink(config, transport=transport) as sink:
            sink.emit_batch([make_event(f"event {i}") for i in range(5)])

        sizes = sorted(len(json.loads(r.content)["docs"]) for r in transport.requests)
        assert sizes == [1, 2, 2]

    def test_batch_preserves_order_within_request(self, transport, make_event, database_url: str) -> None:
        with CouchDBSink(CouchDBSinkConfig(database_url), transport=transport) as sink:
            sink.emit_batch([make_event("first"), make_event("second")])

        docs = json.loads(transport.requests[0].content)["docs"]
        assert [d["MessageTemplate"] for d in docs] == ["first", "second"]

    def test_empty_batch_posts_nothing(self, transport, database_url: str) -> None:
        with CouchDBSink(CouchDBSinkConfig(database_url), transport=transport) as sink:
            sink.emit_batch([])
        assert transport.requests == []


class TestFactory:
    """Verify the couchdb_sink() factory."""

    def test_builds_configured_sink(self, transport, database_url: str) -> None:
        sink = couchdb_sink(database_url, minimum_level=LogLevel.DEBUG, transport=transport)
        try:
            assert sink.config.database_url == database_url + "/"
            assert sink.config.minimum_level == LogLevel.DEBUG
            assert sink.config.batch_posting_limit == 50
            assert sink.config.period.total_seconds() == 2
        finally:
            sink.close()

    def test_username_without_password_fails_before_any_request(self, transport, database_url: str) -> None:
        with pytest.raises(ConfigurationError, match="password"):
            couchdb_sink(database_url, username="admin", transport=transport)
        assert transport.requests == []

    def test_password_without_username_fails(self, database_url: str) -> None:
        with pytest.raises(ConfigurationError, match="username"):
            couchdb_sink(database_url, password="secret")
