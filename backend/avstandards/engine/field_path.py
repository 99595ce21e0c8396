"""Bounded field-path resolution.

Paths follow a strict grammar: ``segment ('.' segment)*`` where a segment is
an identifier or a non-negative list index, e.g. ``display.size`` or
``equipment.0.category``. Resolution only walks mappings by key and sequences
by index; there is no attribute access on arbitrary objects.
"""

import re
from collections.abc import Mapping, Sequence
from functools import lru_cache
from typing import Any, Union

from avstandards.engine.errors import ExpressionParseError

MAX_PATH_DEPTH = 8

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*\Z")
_INDEX = re.compile(r"(0|[1-9][0-9]*)\Z")

# Unanchored form used by the expression parsers to find a path at a position
PATH_PATTERN = r"[A-Za-z_][A-Za-z0-9_]*(?:\.(?:[A-Za-z_][A-Za-z0-9_]*|0|[1-9][0-9]*))*"


class _Missing:
    """Sentinel for a path that does not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()

Segment = Union[str, int]


class FieldPath:
    """A parsed, validated dotted path into a design context."""

    __slots__ = ("text", "segments")

    def __init__(self, text: str, segments: tuple[Segment, ...]):
        self.text = text
        self.segments = segments

    @classmethod
    def parse(cls, text: str) -> "FieldPath":
        return _parse_cached(text.strip())

    @property
    def root(self) -> Segment:
        return self.segments[0]

    def resolve(self, context: Any) -> Any:
        """Walk the context; any absent segment (or a None value) yields MISSING."""
        current = context
        for segment in self.segments:
            if isinstance(segment, int):
                if isinstance(current, (str, bytes)) or not isinstance(current, Sequence):
                    return MISSING
                if segment >= len(current):
                    return MISSING
                current = current[segment]
            else:
                if not isinstance(current, Mapping) or segment not in current:
                    return MISSING
                current = current[segment]
            if current is None:
                return MISSING
        return current

    def covers(self, other: str) -> bool:
        """True when ``other`` is this path or nested beneath it."""
        return other == self.text or other.startswith(self.text + ".")

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FieldPath) and other.segments == self.segments

    def __hash__(self) -> int:
        return hash(self.segments)

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"FieldPath({self.text!r})"


@lru_cache(maxsize=1024)
def _parse_cached(text: str) -> FieldPath:
    if not text:
        raise ExpressionParseError("Empty field path", text)

    parts = text.split(".")
    if len(parts) > MAX_PATH_DEPTH:
        raise ExpressionParseError(
            f"Field path '{text}' is deeper than {MAX_PATH_DEPTH} segments", text
        )

    segments: list[Segment] = []
    for i, part in enumerate(parts):
        if _IDENTIFIER.match(part):
            segments.append(part)
        elif i > 0 and _INDEX.match(part):
            segments.append(int(part))
        else:
            raise ExpressionParseError(f"Invalid field path segment '{part}' in '{text}'", text)

    return FieldPath(text, tuple(segments))


def resolve(path: str, context: Any) -> Any:
    """Parse and resolve in one step."""
    return FieldPath.parse(path).resolve(context)
