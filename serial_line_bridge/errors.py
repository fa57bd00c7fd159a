from __future__ import annotations


class BridgeError(Exception):
    """Base class for serial line bridge errors."""


class PortUnavailable(BridgeError):
    """The device could not be opened at the OS level."""


class PortRejected(BridgeError):
    """The device opened but is not an external serial interface."""


class ConnectError(BridgeError):
    """
    The device opened but its line settings could not be applied.
    Unlike PortUnavailable/PortRejected this points at a real malfunction,
    so it is reported to the user.
    """


class NotFoundError(BridgeError):
    """No candidate device could be opened and validated."""


class ConfigError(BridgeError):
    """Invalid configuration file or option value."""
