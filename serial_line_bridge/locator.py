from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence

from serial.tools import list_ports  # type: ignore

from .config import DEFAULT_OUTPUT_QUEUE_SIZE, PortConfig, default_port_template
from .errors import ConnectError, PortRejected, PortUnavailable
from .session import PortSession

_logger = logging.getLogger(__name__)

# Bluetooth SPP links show up as COM ports with a BTHENUM hardware id
_VIRTUAL_HWID_PREFIXES = ("BTHENUM",)


def candidate_name(number: int, template: Optional[str] = None) -> str:
    """Device name for a numbered candidate, e.g. 4 -> COM4."""
    return (template or default_port_template()).format(n=number)


def is_serial_device(port: str, ports: Optional[Iterable] = None) -> bool:
    """
    Check that `port` is backed by real serial hardware.
    Legacy and virtual ports share the same names but pyserial reports
    them without a hardware id ("n/a").
    Args:
        port: Device name
        ports: ListPortInfo entries, defaults to list_ports.comports()
    Returns:
        bool: True if the device is an external serial interface
    """
    if ports is None:
        ports = list_ports.comports()
    for info in ports:
        if info.device != port:
            continue
        hwid = (info.hwid or "").strip()
        if not hwid or hwid.lower() == "n/a":
            return False
        return not hwid.upper().startswith(_VIRTUAL_HWID_PREFIXES)
    return False


class PortLocator:
    """Finds the microcontroller among numbered serial port candidates."""

    def __init__(
        self,
        config: Optional[PortConfig] = None,
        *,
        template: Optional[str] = None,
        output_queue_size: int = DEFAULT_OUTPUT_QUEUE_SIZE,
        validator: Callable[[str], bool] = is_serial_device,
        session_factory: Callable[..., PortSession] = PortSession,
        on_connect_error: Optional[Callable[[ConnectError], None]] = None,
    ):
        """
        Args:
            config: Line settings for the opened session
            template: Device name pattern with an {n} placeholder
            output_queue_size: Passed to each PortSession
            validator: Accepts or rejects an opened device by name
            session_factory: Builds an unopened PortSession
            on_connect_error: Called when a device opens but cannot be configured
        """
        self.config = config or PortConfig()
        self.template = template or default_port_template()
        self.output_queue_size = output_queue_size
        self.validator = validator
        self.session_factory = session_factory
        self.on_connect_error = on_connect_error

    def order(self, candidates: Iterable[int]) -> List[int]:
        """
        Highest number first: the most recently plugged-in device
        usually gets the highest port number.
        """
        return sorted(set(candidates), reverse=True)

    def try_open(self, port: str) -> Optional[PortSession]:
        session = self.session_factory(self.config, output_queue_size=self.output_queue_size)
        try:
            session.open(port, validator=self.validator)
        except (PortUnavailable, PortRejected) as ex:
            _logger.debug("Skipping %s: %s", port, ex)
            return None
        except ConnectError as ex:
            if self.on_connect_error is not None:
                self.on_connect_error(ex)
            return None
        return session

    def find_and_open(self, candidates: Sequence[int]) -> Optional[PortSession]:
        """
        Open the first candidate that validates.
        Args:
            candidates: Port numbers, tried in descending order
        Returns:
            PortSession, or None if no candidate works
        """
        ordered = self.order(candidates)
        for number in ordered:
            port = candidate_name(number, self.template)
            _logger.debug("Trying %s", port)
            session = self.try_open(port)
            if session is not None:
                return session
        _logger.info("No serial device found among %d candidate(s)", len(ordered))
        return None

    def survey(self, candidates: Sequence[int]) -> List[tuple]:
        """
        List (port, exists, validated) for each candidate without opening any.
        """
        ports = list(list_ports.comports())
        known = {info.device for info in ports}
        result = []
        for number in self.order(candidates):
            port = candidate_name(number, self.template)
            result.append((port, port in known, is_serial_device(port, ports)))
        return result


def find_and_open(candidates: Sequence[int], config: Optional[PortConfig] = None, **kwargs) -> Optional[PortSession]:
    """
    Public function to locate and open the device.
    Args:
        candidates: Port numbers to try
        config: Line settings
        kwargs: Passed to PortLocator
    Returns:
        PortSession, or None if none found
    """
    return PortLocator(config, **kwargs).find_and_open(candidates)
