from __future__ import annotations

import logging
from enum import IntEnum
from typing import Callable, Optional

import serial  # type: ignore

from .config import DEFAULT_OUTPUT_QUEUE_SIZE, PortConfig
from .errors import ConnectError, PortRejected, PortUnavailable

_logger = logging.getLogger(__name__)

TERMINATOR: bytes = b"\n"


class SessionState(IntEnum):
    """
    Lifecycle of a PortSession.
    UNCONNECTED -> CONNECTED -> CLOSED, never back.
    """
    UNCONNECTED = 0
    CONNECTED = 1
    CLOSED = 2


class PortSession:
    """
    Owns one open, configured serial device.
    Features:
        - Opens with DTR de-asserted so the board is not reset on connect
        - Applies line settings in one step, tears down on failure
        - Non-blocking single byte reads (checks in_waiting first)
        - Newline terminated writes
        - Flush then close, idempotent
    """

    _serial: Optional[serial.Serial]
    _state: SessionState

    def __init__(
        self,
        config: Optional[PortConfig] = None,
        *,
        output_queue_size: int = DEFAULT_OUTPUT_QUEUE_SIZE,
        serial_factory: Callable[[], serial.Serial] = serial.Serial,
    ) -> None:
        """
        Args:
            config (PortConfig): Line settings applied on open
            output_queue_size (int): Size of the device's output queue; longer messages are logged
            serial_factory: Creates an unopened serial.Serial-like object
        """
        self.config = config or PortConfig()
        self.output_queue_size = int(output_queue_size)
        self._serial_factory = serial_factory
        self._serial = None
        self._state = SessionState.UNCONNECTED
        self.port: Optional[str] = None

    @classmethod
    def connect(cls, port: str, config: Optional[PortConfig] = None, *,
                validator: Optional[Callable[[str], bool]] = None, **kwargs) -> "PortSession":
        """Create a session and open it on `port`."""
        session = cls(config, **kwargs)
        session.open(port, validator=validator)
        return session

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._serial is not None

    def open(self, port: str, *, validator: Optional[Callable[[str], bool]] = None) -> None:
        """
        Open, validate and configure the device, then purge stale input.
        Args:
            port (str): Device name, e.g. COM4 or /dev/ttyACM0
            validator: Returns True when `port` is an external serial device
        Raises:
            PortUnavailable: The device could not be opened
            PortRejected: The validator refused the device
            ConnectError: The line settings could not be applied
        """
        if self._state != SessionState.UNCONNECTED:
            raise RuntimeError(f"session already {self._state.name.lower()}")

        ser = self._serial_factory()
        ser.port = port
        # must be set before open() so DTR is never raised
        ser.dtr = self.config.reset_on_open
        try:
            ser.open()
        except (serial.SerialException, OSError) as ex:
            raise PortUnavailable(f"{port}: {ex}") from ex

        if validator is not None:
            try:
                accepted = validator(port)
            except (serial.SerialException, OSError) as ex:
                self._release(ser)
                raise PortRejected(f"could not check {port}: {ex}") from ex
            if not accepted:
                self._release(ser)
                raise PortRejected(f"{port} is not an external serial device")

        try:
            ser.apply_settings(self.config.settings())
        except (serial.SerialException, OSError, ValueError) as ex:
            self._release(ser)
            _logger.warning("Could not set serial port parameters on %s: %s", port, ex)
            raise ConnectError(f"could not set serial port parameters on {port}: {ex}") from ex

        try:
            ser.reset_input_buffer()
        except (serial.SerialException, OSError) as ex:
            self._release(ser)
            raise ConnectError(f"could not purge input on {port}: {ex}") from ex

        self._serial = ser
        self._state = SessionState.CONNECTED
        self.port = port
        _logger.info("Connected to %s (%s)", port, self._describe())

    def _describe(self) -> str:
        c = self.config
        return f"{c.baudrate} {c.bytesize}{c.parity}{c.stopbits}"

    @staticmethod
    def _release(ser: serial.Serial) -> None:
        try:
            ser.close()
        except (serial.SerialException, OSError) as ex:
            _logger.debug("Error releasing %s: %s", ser.port, ex)

    def send(self, data: bytes) -> bool:
        """
        Write `data` followed by a single newline.
        The terminator lets receivers such as Arduino's Serial.parseInt()
        finish immediately instead of waiting for their input timeout.
        Args:
            data (bytes): Message body
        Returns:
            bool: True if every byte was written
        """
        if self._serial is None:
            return False
        frame = bytes(data) + TERMINATOR
        if len(frame) > self.output_queue_size:
            _logger.warning("Message of %d bytes exceeds the %d byte output queue",
                            len(frame), self.output_queue_size)
        try:
            written = self._serial.write(frame)
        except (serial.SerialException, OSError) as ex:
            _logger.debug("Write to %s failed: %s", self.port, ex)
            return False
        return written == len(frame)

    def receive_byte(self) -> Optional[int]:
        """
        Return one pending byte, or None when nothing is waiting.
        Read errors are reported as None as well.
        """
        if self._serial is None:
            return None
        try:
            if not self._serial.in_waiting:
                return None
            data = self._serial.read(1)
        except (serial.SerialException, OSError) as ex:
            _logger.debug("Read from %s failed: %s", self.port, ex)
            return None
        if not data:
            return None
        return data[0]

    def close(self) -> None:
        """
        Transmit any buffered output, then release the device.
        Safe to call more than once.
        """
        ser = self._serial
        if ser is None:
            return
        self._serial = None
        self._state = SessionState.CLOSED
        try:
            ser.flush()
        except (serial.SerialException, OSError) as ex:
            _logger.debug("Flush of %s failed: %s", self.port, ex)
        finally:
            self._release(ser)
        _logger.info("Closed %s", self.port)

    def __enter__(self) -> "PortSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
