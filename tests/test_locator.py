from __future__ import annotations

from types import SimpleNamespace

import pytest

import serial  # type: ignore

from serial_line_bridge import locator as locator_mod
from serial_line_bridge.locator import PortLocator, candidate_name, is_serial_device


def _locator(bus, accepted=None, **kwargs) -> PortLocator:
    if accepted is None:
        validator = lambda port: True
    else:
        validator = lambda port: port in accepted
    return PortLocator(template="COM{n}", validator=validator,
                       session_factory=bus.session_factory, **kwargs)


def test_candidate_name() -> None:
    assert candidate_name(4, "COM{n}") == "COM4"
    assert candidate_name(0, "/dev/ttyACM{n}") == "/dev/ttyACM0"


def test_tries_highest_first_and_stops(bus) -> None:
    bus.devices = {"COM3": {}, "COM7": {}}
    session = _locator(bus).find_and_open(range(0, 11))
    assert session is not None
    assert session.port == "COM7"
    assert bus.attempts == ["COM10", "COM9", "COM8", "COM7"]


def test_unordered_candidates_are_sorted(bus) -> None:
    bus.devices = {"COM1": {}, "COM5": {}}
    session = _locator(bus).find_and_open([1, 5, 2])
    assert session.port == "COM5"
    assert bus.attempts == ["COM5"]


def test_rejected_candidate_closed_before_next(bus) -> None:
    bus.devices = {"COM3": {}, "COM7": {}}
    session = _locator(bus, accepted={"COM3"}).find_and_open(range(0, 11))
    assert session.port == "COM3"
    assert bus.max_open == 1
    rejected = [s for s in bus.instances if s.port == "COM7"][0]
    assert rejected.events == ["open", "close"]


def test_not_found(bus) -> None:
    assert _locator(bus).find_and_open(range(0, 21)) is None
    assert bus.attempts == [f"COM{n}" for n in range(20, -1, -1)]
    assert bus.open_count == 0


def test_not_found_when_all_rejected(bus) -> None:
    bus.devices = {"COM1": {}, "COM2": {}}
    assert _locator(bus, accepted=set()).find_and_open(range(0, 3)) is None
    assert bus.open_count == 0
    assert bus.max_open == 1


def test_connect_error_reported_and_search_continues(bus) -> None:
    bus.devices = {"COM2": {}, "COM6": {"fail_settings": True}}
    errors = []
    session = _locator(bus, on_connect_error=errors.append).find_and_open(range(0, 8))
    assert session.port == "COM2"
    assert len(errors) == 1
    assert "COM6" in str(errors[0])
    assert bus.max_open == 1


def test_module_level_find_and_open(bus) -> None:
    bus.devices = {"COM0": {}}
    session = locator_mod.find_and_open([0], template="COM{n}", validator=lambda p: True,
                                        session_factory=bus.session_factory)
    assert session.port == "COM0"


@pytest.mark.parametrize(
    "hwid, expected",
    [
        ("USB VID:PID=2341:0043 SER=75735323 LOCATION=1-1:1.0", True),
        ("ACPI\\PNP0501\\1", True),
        ("n/a", False),
        ("", False),
        (None, False),
        ("BTHENUM\\{00001101-0000-1000-8000-00805F9B34FB}", False),
    ],
)
def test_is_serial_device(hwid, expected) -> None:
    ports = [SimpleNamespace(device="COM3", hwid=hwid)]
    assert is_serial_device("COM3", ports) is expected


def test_is_serial_device_unknown_port() -> None:
    ports = [SimpleNamespace(device="COM3", hwid="USB VID:PID=2341:0043")]
    assert is_serial_device("COM4", ports) is False


def test_survey(monkeypatch) -> None:
    ports = [
        SimpleNamespace(device="COM2", hwid="USB VID:PID=2341:0043"),
        SimpleNamespace(device="COM1", hwid="n/a"),
    ]
    monkeypatch.setattr(locator_mod.list_ports, "comports", lambda: ports)
    result = PortLocator(template="COM{n}").survey(range(0, 3))
    assert result == [
        ("COM2", True, True),
        ("COM1", True, False),
        ("COM0", False, False),
    ]


def test_validator_error_skips_candidate(bus) -> None:
    bus.devices = {"COM2": {}, "COM5": {}}

    def validator(port: str) -> bool:
        if port == "COM5":
            raise serial.SerialException("comports() failed")
        return True

    session = PortLocator(template="COM{n}", validator=validator,
                          session_factory=bus.session_factory).find_and_open(range(0, 6))
    assert session.port == "COM2"
    assert bus.max_open == 1
    assert bus.open_count == 1


def test_candidates_from_iterator(bus) -> None:
    assert _locator(bus).find_and_open(iter([1, 3])) is None
    assert bus.attempts == ["COM3", "COM1"]
