"""
Compact JSON encoding of log events for CouchDB.

Each event becomes one JSON object whose field order is fixed:
Timestamp, MessageTemplate, RenderedMessage, @r, Level, Exception,
Properties, UtcTimestamp. Optional fields are omitted rather than
written empty, and UtcTimestamp is always last. Existing consumers
of the stored documents rely on this layout.
"""

from __future__ import annotations

import json
import math
import traceback
from collections.abc import Iterable
from datetime import UTC, date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import TextIO

from couchdb_log_sink.events import (
    DEFAULT_LEVEL,
    DictionaryValue,
    FormatProvider,
    LogEvent,
    PropertyValue,
    ScalarValue,
    SequenceValue,
    StructureValue,
)

DEFAULT_TYPE_TAG_NAME = "$type"


def write_quoted_json_string(text: str) -> str:
    """Return ``text`` as a quoted JSON string, leaving non-ASCII characters as-is."""
    return json.dumps(text, ensure_ascii=False)


def format_round_trip(timestamp: datetime) -> str:
    """
    Format a timestamp with seven fractional digits and its UTC offset.

    Naive timestamps are interpreted as local time.

    Example: ``2020-09-02T17:04:25.4863900+02:00``
    """
    if timestamp.tzinfo is None:
        timestamp = timestamp.astimezone()
    iso = timestamp.isoformat(timespec="microseconds")
    return iso[:26] + "0" + iso[26:]


def format_round_trip_utc(timestamp: datetime) -> str:
    """Format a timestamp converted to UTC, e.g. ``2020-09-02T15:04:25.4863900Z``."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.astimezone()
    iso = timestamp.astimezone(UTC).isoformat(timespec="microseconds")
    return iso[:26] + "0Z"


class JsonValueFormatter:
    """
    Formats property values as JSON.

    Scalars map to JSON scalars, sequences to arrays, and dictionaries and
    structures to objects. A structure's type tag is written last under
    ``type_tag_name``; pass None to omit type tags.

    Args:
        type_tag_name: Field name used for structure type tags (default "$type").
    """

    def __init__(self, type_tag_name: str | None = DEFAULT_TYPE_TAG_NAME) -> None:
        self._type_tag_name = type_tag_name

    @property
    def type_tag_name(self) -> str | None:
        return self._type_tag_name

    def format(self, value: PropertyValue) -> str:
        """Return the JSON text for ``value``."""
        if isinstance(value, ScalarValue):
            return self._format_scalar(value.value)
        if isinstance(value, SequenceValue):
            return "[" + ",".join(self.format(e) for e in value.elements) + "]"
        if isinstance(value, StructureValue):
            return self._format_structure(value)
        if isinstance(value, DictionaryValue):
            members = (
                write_quoted_json_string(self._key_text(key)) + ":" + self.format(item)
                for key, item in value.elements
            )
            return "{" + ",".join(members) + "}"
        raise TypeError(f"Unsupported property value type: {type(value).__name__}")

    def _format_structure(self, value: StructureValue) -> str:
        members = [
            write_quoted_json_string(name) + ":" + self.format(item)
            for name, item in value.properties
        ]
        if self._type_tag_name is not None and value.type_tag is not None:
            members.append(
                write_quoted_json_string(self._type_tag_name)
                + ":"
                + write_quoted_json_string(value.type_tag)
            )
        return "{" + ",".join(members) + "}"

    @staticmethod
    def _key_text(key: ScalarValue) -> str:
        raw = key.value
        if raw is None:
            return "null"
        if isinstance(raw, Enum):
            return raw.name
        return str(raw)

    @staticmethod
    def _format_scalar(raw: object) -> str:
        if raw is None:
            return "null"
        if isinstance(raw, bool):
            return "true" if raw else "false"
        if isinstance(raw, Enum):
            return write_quoted_json_string(raw.name)
        if isinstance(raw, int):
            return str(raw)
        if isinstance(raw, float):
            if math.isfinite(raw):
                return repr(raw)
            return write_quoted_json_string(str(raw))
        if isinstance(raw, Decimal):
            if raw.is_finite():
                return str(raw)
            return write_quoted_json_string(str(raw))
        if isinstance(raw, str):
            return write_quoted_json_string(raw)
        if isinstance(raw, (datetime, date, time)):
            return write_quoted_json_string(raw.isoformat())
        if isinstance(raw, bytes):
            return write_quoted_json_string(raw.hex())
        return write_quoted_json_string(str(raw))


def _exception_text(exception: BaseException | str) -> str:
    if isinstance(exception, str):
        return exception
    return "".join(traceback.format_exception(exception)).rstrip("\n")


def _escape_property_name(name: str) -> str:
    # A leading '@' is reserved, so it is escaped by doubling
    if name.startswith("@"):
        return "@" + name
    return name


def encode_event(
    event: LogEvent,
    value_formatter: JsonValueFormatter | None = None,
    format_provider: FormatProvider | None = None,
) -> str:
    """
    Encode a log event as a single compact JSON object.

    Args:
        event: The event to encode.
        value_formatter: Formatter for property values. Defaults to a
            JsonValueFormatter tagging structures with "$type".
        format_provider: Optional culture-specific scalar renderer used
            for RenderedMessage and @r.

    Returns:
        The JSON text, without a trailing newline.
    """
    if value_formatter is None:
        value_formatter = JsonValueFormatter()

    template = event.message_template
    properties = event.properties

    parts = [
        '{"Timestamp":"',
        format_round_trip(event.timestamp),
        '","MessageTemplate":',
        write_quoted_json_string(template.text),
    ]

    # Quotes are deleted rather than escaped in the rendered message
    rendered = template.render(properties, format_provider).replace('"', "")
    parts.append(',"RenderedMessage":')
    parts.append(write_quoted_json_string(rendered))

    formatted_tokens = [t for t in template.property_tokens if t.format is not None]
    if formatted_tokens:
        renderings = (
            write_quoted_json_string(t.render(properties, format_provider))
            for t in formatted_tokens
        )
        parts.append(',"@r":[' + ",".join(renderings) + "]")

    if event.level != DEFAULT_LEVEL:
        parts.append(',"Level":' + write_quoted_json_string(event.level.label))

    if event.exception is not None:
        parts.append(',"Exception":' + write_quoted_json_string(_exception_text(event.exception)))

    if properties:
        members = (
            write_quoted_json_string(_escape_property_name(name)) + ":" + value_formatter.format(value)
            for name, value in properties.items()
        )
        parts.append(',"Properties":{' + ",".join(members) + "}")

    parts.append(',"UtcTimestamp":"')
    parts.append(format_round_trip_utc(event.timestamp))
    parts.append('"}')
    return "".join(parts)


def format_bulk_envelope(documents: Iterable[str]) -> str:
    """Wrap encoded documents in a CouchDB ``_bulk_docs`` request body."""
    return '{"docs":[' + ",".join(documents) + "]}"


class CouchDocumentFormatter:
    """
    Line-delimited formatter: writes each event as one JSON object followed by a newline.

    Args:
        value_formatter: Formatter for property values, or None for the default.
        format_provider: Optional culture-specific scalar renderer.
    """

    def __init__(
        self,
        value_formatter: JsonValueFormatter | None = None,
        format_provider: FormatProvider | None = None,
    ) -> None:
        self._value_formatter = value_formatter or JsonValueFormatter()
        self._format_provider = format_provider

    def encode(self, event: LogEvent) -> str:
        """Return the encoded document for ``event`` without a newline."""
        return encode_event(event, self._value_formatter, self._format_provider)

    def format(self, event: LogEvent, output: TextIO) -> None:
        """Write the encoded event and a newline to ``output``."""
        output.write(self.encode(event))
        output.write("\n")
