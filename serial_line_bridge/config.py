from __future__ import annotations

import logging
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Final, Optional, Union

import serial  # type: ignore

try:  # Python 3.11+
    import tomllib as _toml
except ModuleNotFoundError:  # pragma: no cover
    import tomli as _toml  # type: ignore

from .errors import ConfigError

_logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE: Final[str] = "serial_line_bridge.toml"
DEFAULT_BAUDRATE: Final[int] = 9600
DEFAULT_HIGHEST_PORT: Final[int] = 20
DEFAULT_LOWEST_PORT: Final[int] = 0
# Windows serial drivers queue at most 64 unread characters
DEFAULT_OUTPUT_QUEUE_SIZE: Final[int] = 64
DEFAULT_LINE_CAPACITY: Final[int] = 100
DEFAULT_POLL_INTERVAL: Final[float] = 0.1
DEFAULT_ACKNOWLEDGEMENT: Final[str] = "message received!!!"
DEFAULT_TRIGGERS: Final[Dict[str, str]] = {"b": "beep"}

TRIGGER_EFFECTS: Final[tuple] = ("beep",)


def default_port_template(system: Optional[str] = None) -> str:
    """Device name pattern for numbered candidates on the current platform."""
    system = (system or platform.system()).lower()
    if system == "windows":
        return "COM{n}"
    if system == "linux":
        return "/dev/ttyACM{n}"
    if system == "darwin":
        return "/dev/cu.usbmodem{n}"
    return "/dev/ttyUSB{n}"


@dataclass
class PortConfig:
    """
    Line settings applied to the device at connect time.
    reset_on_open: assert DTR when the port opens. Most Arduino boards
    restart when DTR toggles, so this stays off by default.
    """
    baudrate: int = DEFAULT_BAUDRATE
    bytesize: int = serial.EIGHTBITS
    stopbits: float = serial.STOPBITS_ONE
    parity: str = serial.PARITY_NONE
    reset_on_open: bool = False
    write_timeout: float = 1.0

    def settings(self) -> dict:
        """Keyword dict accepted by serial.Serial.apply_settings()."""
        return {
            "baudrate": self.baudrate,
            "bytesize": self.bytesize,
            "stopbits": self.stopbits,
            "parity": self.parity,
            "xonxoff": False,
            "rtscts": False,
            "dsrdtr": False,
            "timeout": 0,
            "write_timeout": self.write_timeout,
        }


@dataclass
class BridgeConfig:
    port: PortConfig = field(default_factory=PortConfig)
    port_template: str = field(default_factory=default_port_template)
    highest: int = DEFAULT_HIGHEST_PORT
    lowest: int = DEFAULT_LOWEST_PORT
    output_queue_size: int = DEFAULT_OUTPUT_QUEUE_SIZE
    line_capacity: int = DEFAULT_LINE_CAPACITY
    poll_interval: float = DEFAULT_POLL_INTERVAL
    run_for: Optional[float] = None
    acknowledgement: str = DEFAULT_ACKNOWLEDGEMENT
    triggers: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TRIGGERS))

    @property
    def candidates(self) -> range:
        return range(self.lowest, self.highest + 1)

    def trigger_bytes(self) -> Dict[int, str]:
        """Map trigger byte values to effect names."""
        return {ord(key): effect for key, effect in self.triggers.items()}

    def validate(self) -> "BridgeConfig":
        if self.lowest < 0 or self.highest < self.lowest:
            raise ConfigError(f"invalid candidate range {self.highest}..{self.lowest}")
        if "{n}" not in self.port_template:
            raise ConfigError(f"port template must contain '{{n}}': {self.port_template!r}")
        try:
            self.port_template.format(n=0)
        except (AttributeError, IndexError, KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"invalid port template {self.port_template!r}: {e}") from e
        if self.line_capacity <= 0:
            raise ConfigError("line_capacity must be positive")
        if self.output_queue_size <= 0:
            raise ConfigError("output_queue_size must be positive")
        if self.poll_interval <= 0:
            raise ConfigError("poll_interval must be positive")
        if self.run_for is not None and self.run_for < 0:
            raise ConfigError("run_for must not be negative")
        for key, effect in self.triggers.items():
            if len(key) != 1 or ord(key) > 0x7F:
                raise ConfigError(f"trigger must be a single ASCII character: {key!r}")
            if key == "\n":
                raise ConfigError("the line terminator cannot be a trigger")
            if effect not in TRIGGER_EFFECTS:
                raise ConfigError(f"unknown trigger effect {effect!r} for {key!r}")
        return self


def _load_toml(config_path: Union[str, Path], required: bool) -> dict:
    """Load the raw TOML table, or {} when the file does not exist."""
    try:
        with open(config_path, "rb") as f:
            return _toml.load(f)
    except FileNotFoundError:
        if required:
            raise ConfigError(f"config file {config_path} not found")
        _logger.debug("Config file %s not found. Using default values.", config_path)
        return {}
    except _toml.TOMLDecodeError as e:
        raise ConfigError(f"failed to parse {config_path}: {e}") from e


def load_config(config_path: Optional[Union[str, Path]] = None) -> BridgeConfig:
    """
    Build a BridgeConfig from a TOML file.
    Args:
        config_path: file to read; None reads DEFAULT_CONFIG_FILE if present
    Returns:
        BridgeConfig: validated configuration
    Raises:
        ConfigError: if the file is unreadable or holds invalid values
    """
    required = config_path is not None
    raw = _load_toml(config_path or DEFAULT_CONFIG_FILE, required)
    serial_cfg = raw.get("serial", {})
    session_cfg = raw.get("session", {})

    try:
        port = PortConfig(
            baudrate=int(serial_cfg.get("baudrate", DEFAULT_BAUDRATE)),
            bytesize=int(serial_cfg.get("bytesize", serial.EIGHTBITS)),
            stopbits=float(serial_cfg.get("stopbits", serial.STOPBITS_ONE)),
            parity=str(serial_cfg.get("parity", serial.PARITY_NONE)).upper(),
            reset_on_open=bool(serial_cfg.get("reset_on_open", False)),
            write_timeout=float(serial_cfg.get("write_timeout", 1.0)),
        )
        if port.stopbits == int(port.stopbits):
            port.stopbits = int(port.stopbits)
        run_for = session_cfg.get("run_for")
        config = BridgeConfig(
            port=port,
            port_template=str(serial_cfg.get("port_template", default_port_template())),
            highest=int(serial_cfg.get("highest", DEFAULT_HIGHEST_PORT)),
            lowest=int(serial_cfg.get("lowest", DEFAULT_LOWEST_PORT)),
            output_queue_size=int(serial_cfg.get("output_queue_size", DEFAULT_OUTPUT_QUEUE_SIZE)),
            line_capacity=int(session_cfg.get("line_capacity", DEFAULT_LINE_CAPACITY)),
            poll_interval=float(session_cfg.get("poll_interval", DEFAULT_POLL_INTERVAL)),
            run_for=float(run_for) if run_for is not None else None,
            acknowledgement=str(session_cfg.get("acknowledgement", DEFAULT_ACKNOWLEDGEMENT)),
            triggers=dict(raw.get("triggers", DEFAULT_TRIGGERS)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid value in config: {e}") from e
    return config.validate()
