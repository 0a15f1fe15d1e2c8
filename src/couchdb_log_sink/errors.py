"""
Exception types raised by couchdb-log-sink.
"""

from __future__ import annotations


class CouchSinkError(Exception):
    """Base class for all couchdb-log-sink errors."""


class ConfigurationError(CouchSinkError, ValueError):
    """Raised when a sink is constructed with invalid or incomplete settings."""


class DeliveryFailure(CouchSinkError):
    """
    Raised when CouchDB answers a bulk post with a non-success status.

    Args:
        status_code: The HTTP status code returned by the server.
        reason: The HTTP reason phrase, if any.
    """

    def __init__(self, status_code: int, reason: str = "") -> None:
        self.status_code = status_code
        self.reason = reason
        status = f"{status_code} {reason}".strip()
        super().__init__(f"Received failed result {status} when posting events to CouchDB")


class TransportError(CouchSinkError):
    """Raised when the bulk post fails before a response is received."""
