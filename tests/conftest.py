from __future__ import annotations

from typing import Dict, List, Optional

import pytest

import serial  # type: ignore

from serial_line_bridge.session import PortSession


class FakeBus:
    """Set of fake devices keyed by port name; tracks how many are open at once."""

    def __init__(self, devices: Optional[Dict[str, dict]] = None) -> None:
        self.devices = dict(devices or {})
        self.instances: List["FakeSerial"] = []
        self.attempts: List[str] = []
        self.open_count = 0
        self.max_open = 0

    def factory(self) -> "FakeSerial":
        s = FakeSerial(bus=self)
        self.instances.append(s)
        return s

    def session_factory(self, config=None, **kwargs) -> PortSession:
        return PortSession(config, serial_factory=self.factory, **kwargs)


class FakeSerial:
    """Stand-in for an unopened serial.Serial."""

    def __init__(self, *, bus: Optional[FakeBus] = None, fail_open: bool = False,
                 fail_settings: bool = False, fail_write: bool = False,
                 fail_read: bool = False, fail_flush: bool = False,
                 write_limit: Optional[int] = None) -> None:
        self.bus = bus
        self.port: Optional[str] = None
        self.dtr = True
        self.dtr_at_open: Optional[bool] = None
        self.is_open = False
        self.fail_open = fail_open
        self.fail_settings = fail_settings
        self.fail_write = fail_write
        self.fail_read = fail_read
        self.fail_flush = fail_flush
        self.write_limit = write_limit
        self.settings: Optional[dict] = None
        self.incoming = bytearray()
        self.written: List[bytes] = []
        self.events: List[str] = []
        self.read_calls = 0

    def open(self) -> None:
        if self.bus is not None:
            self.bus.attempts.append(self.port)
            behaviour = self.bus.devices.get(self.port)
            if behaviour is None:
                raise serial.SerialException(f"could not open port {self.port}")
            for key, value in behaviour.items():
                setattr(self, key, value)
        if self.fail_open:
            raise serial.SerialException(f"could not open port {self.port}")
        self.dtr_at_open = self.dtr
        self.is_open = True
        self.events.append("open")
        if self.bus is not None:
            self.bus.open_count += 1
            self.bus.max_open = max(self.bus.max_open, self.bus.open_count)

    def apply_settings(self, d: dict) -> None:
        if self.fail_settings:
            raise ValueError("Not a valid baudrate")
        self.settings = dict(d)

    def reset_input_buffer(self) -> None:
        self.events.append("purge")
        self.incoming.clear()

    @property
    def in_waiting(self) -> int:
        if self.fail_read:
            raise serial.SerialException("ClearCommError failed")
        return len(self.incoming)

    def read(self, size: int = 1) -> bytes:
        self.read_calls += 1
        data = bytes(self.incoming[:size])
        del self.incoming[:size]
        return data

    def write(self, data: bytes) -> int:
        if self.fail_write:
            raise serial.SerialTimeoutException("Write timeout")
        n = len(data) if self.write_limit is None else min(len(data), self.write_limit)
        self.written.append(bytes(data[:n]))
        return n

    def flush(self) -> None:
        self.events.append("flush")
        if self.fail_flush:
            raise serial.SerialException("flush failed")

    def close(self) -> None:
        self.events.append("close")
        if self.is_open and self.bus is not None:
            self.bus.open_count -= 1
        self.is_open = False


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: List[tuple] = []
        self.warnings: List[str] = []
        self.beeps = 0

    def show_message(self, title: str, text: str) -> None:
        self.messages.append((title, text))

    def warn(self, text: str) -> None:
        self.warnings.append(text)

    def beep(self) -> None:
        self.beeps += 1


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_serial() -> FakeSerial:
    return FakeSerial()


@pytest.fixture
def session(fake_serial) -> PortSession:
    """Connected session on a FakeSerial, incoming buffer empty."""
    return PortSession.connect("COM4", serial_factory=lambda: fake_serial)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus() -> FakeBus:
    return FakeBus()
