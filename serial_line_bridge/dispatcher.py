from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from .config import DEFAULT_ACKNOWLEDGEMENT, DEFAULT_POLL_INTERVAL
from .framing import EventKind, FrameReader, LineEvent, parse_number
from .session import PortSession

_logger = logging.getLogger(__name__)

MESSAGE_TITLE = "message received from device"


def _never() -> bool:
    return False


class Dispatcher:
    """
    Polling loop between a PortSession and the user.

    Each tick reads at most one byte, feeds it to the FrameReader and acts on
    the result: trigger bytes run their effect, completed lines are shown,
    parsed for a number and acknowledged. The loop ends when `cancelled()`
    returns True or the run limit expires, and the session is closed on every
    exit path.

    Args:
        session: Open PortSession, owned by the dispatcher from here on
        reader: FrameReader for received bytes
        notifier: Object with show_message(title, text)
        effects: Trigger byte -> callable run when that byte is received
        acknowledgement: Text sent back after every completed line
        on_number: Called with the numeric payload of a completed line
        poll_interval: Seconds per tick
        run_for: Seconds before the loop stops, None for no limit
        max_ticks: Ticks before the loop stops, None for no limit
        cancelled: Polled at the start of every tick
        clock, sleep: Time source, injectable for tests
    """

    def __init__(
        self,
        session: PortSession,
        reader: FrameReader,
        notifier,
        *,
        effects: Optional[Dict[int, Callable[[], None]]] = None,
        acknowledgement: str = DEFAULT_ACKNOWLEDGEMENT,
        on_number: Optional[Callable[[int], None]] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        run_for: Optional[float] = None,
        max_ticks: Optional[int] = None,
        cancelled: Callable[[], bool] = _never,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session = session
        self.reader = reader
        self.notifier = notifier
        self.effects = dict(effects or {})
        self.acknowledgement = acknowledgement.encode("utf-8")
        self.on_number = on_number
        self.poll_interval = float(poll_interval)
        self.run_for = run_for
        self.max_ticks = max_ticks
        self.cancelled = cancelled
        self.clock = clock
        self.sleep = sleep

    def handle(self, event: LineEvent) -> None:
        """Apply the side effects of one FrameReader event."""
        if event.kind == EventKind.CHAR_TRIGGER:
            effect = self.effects.get(event.byte)
            if effect is not None:
                effect()
        elif event.kind == EventKind.LINE_COMPLETE:
            self.handle_line(event.text)

    def handle_line(self, text: str) -> None:
        if text:
            _logger.info("Received %r", text)
            self.notifier.show_message(MESSAGE_TITLE, text)
        number = parse_number(text)
        if number is not None:
            _logger.debug("Numeric payload %d", number)
            if self.on_number is not None:
                self.on_number(number)
        if not self.session.send(self.acknowledgement):
            _logger.debug("Acknowledgement not sent")

    def tick(self) -> None:
        b = self.session.receive_byte()
        if b is not None:
            self.handle(self.reader.feed(b))

    def _expired(self, deadline: Optional[float], ticks: int) -> bool:
        if deadline is not None and self.clock() >= deadline:
            return True
        return self.max_ticks is not None and ticks >= self.max_ticks

    def run(self) -> int:
        """
        Run until cancelled or out of time.
        Returns:
            int: Number of ticks executed
        """
        ticks = 0
        deadline = self.clock() + self.run_for if self.run_for is not None else None
        try:
            while not self.cancelled() and not self._expired(deadline, ticks):
                started = self.clock()
                self.tick()
                ticks += 1
                remaining = self.poll_interval - (self.clock() - started)
                if remaining > 0:
                    self.sleep(remaining)
        finally:
            self.session.close()
        return ticks
