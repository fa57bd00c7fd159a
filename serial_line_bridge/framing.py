from __future__ import annotations

import re
from enum import IntEnum
from typing import Final, Iterable, List, NamedTuple, Optional

from .config import DEFAULT_LINE_CAPACITY

TERMINATOR: Final[int] = 0x0A

# strtol(): optional whitespace, optional sign, decimal digits
_NUMBER_PREFIX = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")


def is_printable(b: int) -> bool:
    """Printable 7-bit ASCII, the same set as C isprint()."""
    return 0x20 <= b <= 0x7E


def parse_number(text: str) -> Optional[int]:
    """
    Parse the leading base-10 integer of a received line.
    Trailing characters are ignored ("42abc" -> 42). A result of zero is
    only a number when the text starts with "0"; otherwise zero means the
    text was not numeric and None is returned.
    Examples:
        "042" -> 42, "0" -> 0, "abc" -> None, "" -> None
    """
    m = _NUMBER_PREFIX.match(text)
    value = int(m.group(1)) if m else 0
    if value != 0 or text[:1] == "0":
        return value
    return None


class EventKind(IntEnum):
    """
    Result of feeding one byte to a FrameReader.
    IGNORED: nothing to act on
    CHAR_TRIGGER: the byte is a configured trigger
    LINE_COMPLETE: a newline ended the current line
    """
    IGNORED = 0
    CHAR_TRIGGER = 1
    LINE_COMPLETE = 2


class LineEvent(NamedTuple):
    kind: EventKind
    byte: Optional[int] = None
    text: Optional[str] = None

    @classmethod
    def ignored(cls) -> "LineEvent":
        return cls(EventKind.IGNORED)

    @classmethod
    def trigger(cls, b: int) -> "LineEvent":
        return cls(EventKind.CHAR_TRIGGER, byte=b)

    @classmethod
    def line(cls, text: str) -> "LineEvent":
        return cls(EventKind.LINE_COMPLETE, text=text)


class FrameReader:
    """
    Accumulates received bytes into newline terminated lines.
    Features:
        - Buffers printable ASCII only
        - Truncates lines longer than `capacity`
        - Reports configured trigger bytes whether or not they are buffered
    Args:
        capacity (int): Maximum buffered characters per line
        triggers (Iterable[int]): Byte values reported as CHAR_TRIGGER
    """

    def __init__(self, capacity: int = DEFAULT_LINE_CAPACITY, triggers: Iterable[int] = ()):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = int(capacity)
        self.triggers = frozenset(triggers)
        if TERMINATOR in self.triggers:
            raise ValueError("the line terminator cannot be a trigger")
        self._buf = bytearray()

    @property
    def buffer(self) -> str:
        """Characters collected for the current line."""
        return self._buf.decode("ascii")

    def __len__(self) -> int:
        return len(self._buf)

    def reset(self) -> None:
        """Start a new, empty line."""
        self._buf = bytearray()

    def feed(self, b: int) -> LineEvent:
        """
        Process one received byte.
        Args:
            b (int): Byte value 0..255
        Returns:
            LineEvent: what the byte means to the caller
        """
        if b == TERMINATOR:
            text = self.buffer
            self.reset()
            return LineEvent.line(text)

        if is_printable(b) and len(self._buf) < self.capacity:
            self._buf.append(b)

        if b in self.triggers:
            return LineEvent.trigger(b)
        return LineEvent.ignored()

    def feed_all(self, data: bytes) -> List[LineEvent]:
        """Feed every byte of `data`, returning the non-ignored events."""
        out: List[LineEvent] = []
        for b in data:
            event = self.feed(b)
            if event.kind != EventKind.IGNORED:
                out.append(event)
        return out
