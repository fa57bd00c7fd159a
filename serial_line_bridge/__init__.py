"""Serial Line Bridge package.

Talk to a microcontroller over a serial port using newline terminated text
and single character triggers, built on pyserial.
"""

__all__ = [
    "BridgeConfig",
    "ConnectError",
    "Dispatcher",
    "EventKind",
    "FrameReader",
    "LineEvent",
    "NotFoundError",
    "PortConfig",
    "PortLocator",
    "PortSession",
    "SessionState",
    "find_and_open",
    "load_config",
    "parse_number",
]

from .config import BridgeConfig, PortConfig, load_config
from .dispatcher import Dispatcher
from .errors import ConnectError, NotFoundError
from .framing import EventKind, FrameReader, LineEvent, parse_number
from .locator import PortLocator, find_and_open
from .session import PortSession, SessionState

__version__ = "0.1.0"
