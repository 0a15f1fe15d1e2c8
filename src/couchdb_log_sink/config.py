"""
Configuration for CouchDBSink.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from couchdb_log_sink.errors import ConfigurationError
from couchdb_log_sink.events import FormatProvider, LogLevel

DEFAULT_BATCH_POSTING_LIMIT = 50
DEFAULT_PERIOD = timedelta(seconds=2)
DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True)
class CouchDBSinkConfig:
    """
    Configuration for CouchDBSink. Immutable once constructed.

    Args:
        database_url: URL of an existing CouchDB database (required). A trailing
            "/" is appended if missing.
        minimum_level: Events below this level are dropped (default VERBOSE, i.e. all).
        batch_posting_limit: Maximum number of documents per bulk post when
            using emit_batch (default 50).
        period: Flush period for an upstream batching pipeline (default 2 seconds).
            The sink itself does not schedule flushes.
        format_provider: Optional callable rendering scalars for a culture.
        username: Username for HTTP Basic authentication. Requires password.
        password: Password for HTTP Basic authentication. Requires username.
        timeout: Request timeout in seconds (default 10).
        max_workers: Size of the delivery thread pool (default 4).

    Raises:
        ConfigurationError: If the URL is missing, only one credential is given,
            or a numeric setting is not positive.
    """

    database_url: str
    minimum_level: LogLevel = LogLevel.VERBOSE
    batch_posting_limit: int = DEFAULT_BATCH_POSTING_LIMIT
    period: timedelta = DEFAULT_PERIOD
    format_provider: FormatProvider | None = None
    username: str | None = None
    password: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    max_workers: int = DEFAULT_MAX_WORKERS

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ConfigurationError("database_url is required")
        if self.username is not None and self.password is None:
            raise ConfigurationError("password is required when username is set")
        if self.username is None and self.password is not None:
            raise ConfigurationError("username is required when password is set")
        if self.batch_posting_limit <= 0:
            raise ConfigurationError(
                f"batch_posting_limit must be positive, got {self.batch_posting_limit}"
            )
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}")
        if self.max_workers <= 0:
            raise ConfigurationError(f"max_workers must be positive, got {self.max_workers}")

        if not self.database_url.endswith("/"):
            object.__setattr__(self, "database_url", self.database_url + "/")

    @property
    def has_credentials(self) -> bool:
        """Return True if Basic authentication is configured."""
        return self.username is not None and self.password is not None
