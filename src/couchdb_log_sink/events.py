"""
Structured log event model.

A LogEvent carries a parsed message template together with the property
values bound to it. Property values form a closed set of four variants
(scalar, sequence, structure, dictionary), each of which knows how to
render its own display form for message rendering.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Union
from uuid import UUID

from couchdb_log_sink.template import MessageTemplate, parse_template

#: Callable used for culture-specific scalar rendering. Returning None falls
#: back to the built-in rendering rules.
FormatProvider = Callable[[Any, "str | None"], "str | None"]

DEFAULT_MAX_DEPTH = 10

_SCALAR_TYPES = (
    str,
    bool,
    int,
    float,
    Decimal,
    datetime,
    date,
    time,
    timedelta,
    UUID,
    Enum,
    bytes,
    type(None),
)


class LogLevel(IntEnum):
    """Severity of a log event, from least to most severe."""

    VERBOSE = 0
    DEBUG = 1
    INFORMATION = 2
    WARNING = 3
    ERROR = 4
    FATAL = 5

    @property
    def label(self) -> str:
        """Return the name written to encoded documents, e.g. "Warning"."""
        return self.name.capitalize()

    @classmethod
    def from_logging(cls, levelno: int) -> LogLevel:
        """Map a standard library logging level number onto a LogLevel."""
        if levelno >= logging.CRITICAL:
            return cls.FATAL
        if levelno >= logging.ERROR:
            return cls.ERROR
        if levelno >= logging.WARNING:
            return cls.WARNING
        if levelno >= logging.INFO:
            return cls.INFORMATION
        if levelno >= logging.DEBUG:
            return cls.DEBUG
        return cls.VERBOSE


DEFAULT_LEVEL = LogLevel.INFORMATION


# ----------------------------------------------------------------------
# Property values
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class ScalarValue:
    """A single primitive value such as a string, number, date or None."""

    value: Any

    def render(
        self,
        format_spec: str | None = None,
        format_provider: FormatProvider | None = None,
    ) -> str:
        value = self.value
        if value is None:
            return "null"

        if isinstance(value, str):
            if format_spec and "l" in format_spec:
                return value
            return '"' + value.replace('"', '\\"') + '"'

        if format_provider is not None:
            custom = format_provider(value, format_spec)
            if custom is not None:
                return custom

        if isinstance(value, bool):
            return str(value)

        if format_spec:
            try:
                return format(value, format_spec)
            except (TypeError, ValueError):
                return str(value)

        return str(value)


@dataclass(frozen=True)
class SequenceValue:
    """An ordered collection of property values."""

    elements: tuple[PropertyValue, ...] = ()

    def render(
        self,
        format_spec: str | None = None,
        format_provider: FormatProvider | None = None,
    ) -> str:
        inner = ", ".join(e.render(format_spec, format_provider) for e in self.elements)
        return f"[{inner}]"


@dataclass(frozen=True)
class StructureValue:
    """A named set of properties, optionally labelled with a type tag."""

    properties: tuple[tuple[str, PropertyValue], ...] = ()
    type_tag: str | None = None

    def render(
        self,
        format_spec: str | None = None,
        format_provider: FormatProvider | None = None,
    ) -> str:
        parts = [f"{name}: {value.render(None, format_provider)}" for name, value in self.properties]
        body = "{ " + ", ".join(parts) + " }" if parts else "{ }"
        if self.type_tag:
            return f"{self.type_tag} {body}"
        return body


@dataclass(frozen=True)
class DictionaryValue:
    """A mapping from scalar keys to property values."""

    elements: tuple[tuple[ScalarValue, PropertyValue], ...] = ()

    def render(
        self,
        format_spec: str | None = None,
        format_provider: FormatProvider | None = None,
    ) -> str:
        parts = [
            f"({key.render(None, format_provider)}: {value.render(format_spec, format_provider)})"
            for key, value in self.elements
        ]
        return "[" + ", ".join(parts) + "]"


PropertyValue = Union[ScalarValue, SequenceValue, StructureValue, DictionaryValue]

_PROPERTY_VALUE_TYPES = (ScalarValue, SequenceValue, StructureValue, DictionaryValue)


def capture_value(obj: Any, *, max_depth: int = DEFAULT_MAX_DEPTH) -> PropertyValue:
    """
    Convert an arbitrary Python object into a PropertyValue.

    Mappings become dictionaries, dataclass instances become structures
    tagged with their class name, and other non-string iterables become
    sequences. Nesting deeper than ``max_depth`` is captured as null.

    Args:
        obj: The object to capture.
        max_depth: Maximum nesting depth to descend into.

    Returns:
        The captured property value.
    """
    return _capture(obj, 0, max_depth)


def _capture(obj: Any, depth: int, max_depth: int) -> PropertyValue:
    if isinstance(obj, _PROPERTY_VALUE_TYPES):
        return obj
    if isinstance(obj, _SCALAR_TYPES):
        return ScalarValue(obj)
    if depth >= max_depth:
        return ScalarValue(None)

    if isinstance(obj, Mapping):
        return DictionaryValue(
            tuple(
                (_capture_key(key), _capture(value, depth + 1, max_depth))
                for key, value in obj.items()
            )
        )

    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return StructureValue(
            tuple(
                (f.name, _capture(getattr(obj, f.name), depth + 1, max_depth))
                for f in dataclasses.fields(obj)
            ),
            type_tag=type(obj).__name__,
        )

    if isinstance(obj, Iterable):
        return SequenceValue(tuple(_capture(item, depth + 1, max_depth) for item in obj))

    return ScalarValue(obj)


def _capture_key(key: Any) -> ScalarValue:
    if isinstance(key, _SCALAR_TYPES):
        return ScalarValue(key)
    return ScalarValue(str(key))


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class LogEvent:
    """
    One structured log record.

    Args:
        timestamp: When the event occurred. Naive values are treated as local time.
        level: Severity of the event.
        message_template: The parsed message template.
        properties: Property values bound to the event, in insertion order.
        exception: Optional attached exception, or its pre-rendered text.
    """

    timestamp: datetime
    level: LogLevel
    message_template: MessageTemplate
    properties: dict[str, PropertyValue] = field(default_factory=dict)
    exception: BaseException | str | None = None

    @classmethod
    def create(
        cls,
        template: str,
        properties: Mapping[str, Any] | None = None,
        *,
        level: LogLevel = DEFAULT_LEVEL,
        exception: BaseException | str | None = None,
        timestamp: datetime | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> LogEvent:
        """
        Build an event from template text and plain Python property values.

        Properties bound to a ``{$Name}`` token are captured as their string form.
        """
        parsed = parse_template(template)
        stringified = {t.name for t in parsed.property_tokens if t.destructuring == "$"}

        captured: dict[str, PropertyValue] = {}
        for name, value in (properties or {}).items():
            if name in stringified and not isinstance(value, _PROPERTY_VALUE_TYPES):
                captured[name] = ScalarValue(None if value is None else str(value))
            else:
                captured[name] = capture_value(value, max_depth=max_depth)

        return cls(
            timestamp=timestamp or datetime.now(UTC).astimezone(),
            level=level,
            message_template=parsed,
            properties=captured,
            exception=exception,
        )
