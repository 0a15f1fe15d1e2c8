"""
CouchDB sink for log events.

Posts encoded events to a CouchDB database through its ``_bulk_docs``
API. Delivery is fire-and-forget: emit() hands the post to a worker
thread and returns immediately, and failures are routed to an error hook
(by default the self-diagnostics logger) instead of back to the caller.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import timedelta
from typing import Any

import httpx

from couchdb_log_sink import selflog
from couchdb_log_sink.config import (
    DEFAULT_BATCH_POSTING_LIMIT,
    DEFAULT_MAX_WORKERS,
    DEFAULT_PERIOD,
    DEFAULT_TIMEOUT,
    CouchDBSinkConfig,
)
from couchdb_log_sink.errors import DeliveryFailure, TransportError
from couchdb_log_sink.events import FormatProvider, LogEvent, LogLevel
from couchdb_log_sink.formatting import CouchDocumentFormatter, format_bulk_envelope

_log = logging.getLogger(__name__)

BULK_UPLOAD_RESOURCE = "_bulk_docs"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"

ErrorHook = Callable[[BaseException], None]


class CouchDBSink:
    """
    Log sink that writes events as documents to a CouchDB database.

    One httpx.Client and one thread pool are created per sink and shared by
    every delivery. Concurrent deliveries may reach the database out of order.

    Args:
        config: Validated sink configuration.
        transport: Optional httpx transport, e.g. httpx.MockTransport in tests.
        on_error: Called with the DeliveryFailure or TransportError of a failed
            fire-and-forget delivery. Defaults to reporting on the self-log.

    Example::

        sink = CouchDBSink(CouchDBSinkConfig("http://localhost:5984/logs"))
        sink.emit(LogEvent.create("Hello {World}!", {"World": "Earth"}))
        sink.close()
    """

    def __init__(
        self,
        config: CouchDBSinkConfig,
        *,
        transport: httpx.BaseTransport | None = None,
        on_error: ErrorHook | None = None,
    ) -> None:
        self._config = config
        self._formatter = CouchDocumentFormatter(format_provider=config.format_provider)
        self._on_error: ErrorHook = on_error if on_error is not None else selflog.report_delivery_error

        auth = None
        if config.has_credentials:
            auth = httpx.BasicAuth(config.username, config.password)

        self._client = httpx.Client(
            base_url=config.database_url,
            auth=auth,
            timeout=config.timeout,
            transport=transport,
        )
        self._executor = ThreadPoolExecutor(
            max_workers=config.max_workers,
            thread_name_prefix="couchdb-sink",
        )
        self._lock = threading.Lock()
        self._closed = False

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------

    @property
    def config(self) -> CouchDBSinkConfig:
        """Return the sink configuration."""
        return self._config

    @property
    def closed(self) -> bool:
        """Return True once close() has been called."""
        return self._closed

    # ------------------------------------------------------------------
    # Fire-and-forget delivery
    # ------------------------------------------------------------------

    def emit(self, event: LogEvent) -> None:
        """
        Post a single event in the background.

        Events below the configured minimum level are dropped.

        Args:
            event: The log event.
        """
        if event.level < self._config.minimum_level:
            _log.debug("Dropping %s event below minimum level", event.level.label)
            return
        self._dispatch([event])

    def emit_batch(self, events: Iterable[LogEvent]) -> None:
        """
        Post events in the background, at most batch_posting_limit per request.

        Args:
            events: The log events, in order.
        """
        minimum = self._config.minimum_level
        accepted = [e for e in events if e.level >= minimum]
        limit = self._config.batch_posting_limit
        for start in range(0, len(accepted), limit):
            self._dispatch(accepted[start : start + limit])

    def _dispatch(self, events: list[LogEvent]) -> None:
        with self._lock:
            if self._closed:
                selflog.report("Dropping %d log event(s): CouchDB sink is closed", len(events))
                return
            future = self._executor.submit(self.send, events)
        future.add_done_callback(self._handle_result)

    def _handle_result(self, future: Future[None]) -> None:
        exc = future.exception()
        if exc is None:
            return
        try:
            self._on_error(exc)
        except Exception as hook_exc:
            selflog.report("Error hook failed while handling %r", exc, exc_info=hook_exc)

    # ------------------------------------------------------------------
    # Synchronous delivery
    # ------------------------------------------------------------------

    def send(self, events: Sequence[LogEvent]) -> None:
        """
        Post events as one ``_bulk_docs`` request and wait for the response.

        The response body is not inspected; any 2xx status is success.
        Lone surrogates in event text are sent as ``\\uXXXX`` JSON escapes.

        Args:
            events: The log events to post.

        Raises:
            DeliveryFailure: If CouchDB answers with a non-success status.
            TransportError: If the request fails before a response arrives.
        """
        body = format_bulk_envelope(self._formatter.encode(e) for e in events)
        # Every string in the body is JSON-quoted, so a backslash escape stays valid JSON
        payload = body.encode("utf-8", errors="backslashreplace")
        with selflog.delivering():
            try:
                response = self._client.post(
                    BULK_UPLOAD_RESOURCE,
                    content=payload,
                    headers={"Content-Type": JSON_CONTENT_TYPE},
                )
            except httpx.HTTPError as exc:
                raise TransportError(f"Failed to post events to CouchDB: {exc}") from exc

        if not response.is_success:
            raise DeliveryFailure(response.status_code, response.reason_phrase)

        _log.debug("Posted %d document(s) to CouchDB", len(events))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Wait for in-flight deliveries, then release the thread pool and HTTP client."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=True)
        self._client.close()

    def __enter__(self) -> CouchDBSink:
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Context manager exit - flush and close."""
        self.close()


def couchdb_sink(
    database_url: str,
    *,
    minimum_level: LogLevel = LogLevel.VERBOSE,
    batch_posting_limit: int = DEFAULT_BATCH_POSTING_LIMIT,
    period: timedelta | None = None,
    format_provider: FormatProvider | None = None,
    username: str | None = None,
    password: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_workers: int = DEFAULT_MAX_WORKERS,
    transport: httpx.BaseTransport | None = None,
    on_error: ErrorHook | None = None,
) -> CouchDBSink:
    """
    Build a CouchDBSink from keyword settings.

    Args:
        database_url: URL of an existing CouchDB database.
        minimum_level: Minimum level of events to post.
        batch_posting_limit: Maximum documents per request in emit_batch.
        period: Flush period for an upstream batching pipeline, or None for 2 seconds.
        format_provider: Optional culture-specific scalar renderer.
        username: Basic authentication username. Requires password.
        password: Basic authentication password. Requires username.
        timeout: Request timeout in seconds.
        max_workers: Size of the delivery thread pool.
        transport: Optional httpx transport.
        on_error: Optional hook for failed deliveries.

    Returns:
        The configured sink.

    Raises:
        ConfigurationError: If the settings are invalid.
    """
    config = CouchDBSinkConfig(
        database_url=database_url,
        minimum_level=minimum_level,
        batch_posting_limit=batch_posting_limit,
        period=period if period is not None else DEFAULT_PERIOD,
        format_provider=format_provider,
        username=username,
        password=password,
        timeout=timeout,
        max_workers=max_workers,
    )
    return CouchDBSink(config, transport=transport, on_error=on_error)
