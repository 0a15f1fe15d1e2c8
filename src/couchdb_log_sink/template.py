"""
Message template parsing and rendering.

Templates interleave literal text with named holes, for example
``"Processed {Count} items in {Elapsed:0.00} ms"``. Doubled braces
(``{{`` and ``}}``) are literal braces; anything that does not parse as
a property hole is kept as literal text.
"""

from __future__ import annotations

import functools
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from couchdb_log_sink.events import FormatProvider, PropertyValue

_PROPERTY_NAME = re.compile(r"[A-Za-z0-9_]+")
_ALIGNMENT = re.compile(r"-?\d+")

DESTRUCTURE_DEFAULT = "default"
DESTRUCTURE_OBJECT = "@"
DESTRUCTURE_STRINGIFY = "$"


@dataclass(frozen=True)
class TextToken:
    """Literal text within a template."""

    text: str

    def render(
        self,
        properties: Mapping[str, PropertyValue],
        format_provider: FormatProvider | None = None,
    ) -> str:
        return self.text


@dataclass(frozen=True)
class PropertyToken:
    """
    A named hole within a template.

    Args:
        name: Property name the hole binds to.
        raw_text: The hole exactly as written, braces included.
        format: Display-format specifier following ``:``, if any.
        alignment: Padding width following ``,``; negative pads on the right.
        destructuring: One of "default", "@" or "$".
    """

    name: str
    raw_text: str
    format: str | None = None
    alignment: int | None = None
    destructuring: str = DESTRUCTURE_DEFAULT

    def render(
        self,
        properties: Mapping[str, PropertyValue],
        format_provider: FormatProvider | None = None,
    ) -> str:
        if self.name not in properties:
            return self.raw_text

        rendered = properties[self.name].render(self.format, format_provider)
        if self.alignment:
            width = abs(self.alignment)
            rendered = rendered.rjust(width) if self.alignment > 0 else rendered.ljust(width)
        return rendered


Token = Union[TextToken, PropertyToken]


@dataclass(frozen=True)
class MessageTemplate:
    """A parsed message template."""

    text: str
    tokens: tuple[Token, ...] = ()

    @property
    def property_tokens(self) -> tuple[PropertyToken, ...]:
        return tuple(t for t in self.tokens if isinstance(t, PropertyToken))

    def render(
        self,
        properties: Mapping[str, PropertyValue],
        format_provider: FormatProvider | None = None,
    ) -> str:
        """Render every token against ``properties`` and join the results."""
        return "".join(t.render(properties, format_provider) for t in self.tokens)


@functools.lru_cache(maxsize=1024)
def parse_template(text: str) -> MessageTemplate:
    """
    Parse template text into literal and property tokens.

    Results are cached, since applications log the same templates repeatedly.

    Args:
        text: The raw template text.

    Returns:
        The parsed MessageTemplate.
    """
    tokens: list[Token] = []
    literal: list[str] = []

    def flush() -> None:
        if literal:
            tokens.append(TextToken("".join(literal)))
            literal.clear()

    i = 0
    length = len(text)
    while i < length:
        ch = text[i]
        if ch == "{":
            if text.startswith("{{", i):
                literal.append("{")
                i += 2
                continue

            end = text.find("}", i + 1)
            if end == -1:
                literal.append(text[i:])
                break

            # A second opening brace before the close starts a new candidate hole
            reopen = text.find("{", i + 1, end)
            if reopen != -1:
                literal.append(text[i:reopen])
                i = reopen
                continue

            raw = text[i : end + 1]
            token = _parse_property_token(raw)
            if token is None:
                literal.append(raw)
            else:
                flush()
                tokens.append(token)
            i = end + 1
        elif ch == "}":
            literal.append("}")
            i += 2 if text.startswith("}}", i) else 1
        else:
            literal.append(ch)
            i += 1

    flush()
    return MessageTemplate(text=text, tokens=tuple(tokens))


def _parse_property_token(raw: str) -> PropertyToken | None:
    """Parse a ``{...}`` hole, returning None if it is malformed."""
    content = raw[1:-1]

    destructuring = DESTRUCTURE_DEFAULT
    if content[:1] in (DESTRUCTURE_OBJECT, DESTRUCTURE_STRINGIFY):
        destructuring = content[0]
        content = content[1:]

    head, colon, fmt = content.partition(":")
    if colon and not fmt:
        return None

    name, comma, align_text = head.partition(",")
    alignment = None
    if comma:
        if not _ALIGNMENT.fullmatch(align_text):
            return None
        alignment = int(align_text)

    if not _PROPERTY_NAME.fullmatch(name):
        return None

    return PropertyToken(
        name=name,
        raw_text=raw,
        format=fmt or None,
        alignment=alignment,
        destructuring=destructuring,
    )
