from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

import click

from .config import BridgeConfig, load_config
from .dispatcher import Dispatcher
from .errors import BridgeError, NotFoundError
from .framing import FrameReader
from .locator import PortLocator
from .notify import CancelFlag, ConsoleNotifier
from .session import PortSession

_logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    logging.getLogger("serial_line_bridge").setLevel(level)


def _effects(config: BridgeConfig, notifier: ConsoleNotifier) -> Dict[int, Callable[[], None]]:
    available = {"beep": notifier.beep}
    return {b: available[name] for b, name in config.trigger_bytes().items()}


def _open_session(config: BridgeConfig, port: Optional[str], notifier: ConsoleNotifier) -> PortSession:
    if port:
        return PortSession.connect(port, config.port, output_queue_size=config.output_queue_size)

    locator = PortLocator(
        config.port,
        template=config.port_template,
        output_queue_size=config.output_queue_size,
        on_connect_error=lambda ex: notifier.warn(str(ex)),
    )
    session = locator.find_and_open(config.candidates)
    if session is None:
        raise NotFoundError("could not connect to serial port")
    return session


@click.command()
@click.option("-p", "--port", help="Serial port (e.g., /dev/ttyACM0, COM3). If not specified, will search candidates.")
@click.option("-b", "--baudrate", type=int, help="Baud rate [default: 9600]")
@click.option("--highest", type=int, help="Highest candidate port number [default: 20]")
@click.option("--lowest", type=int, help="Lowest candidate port number [default: 0]")
@click.option("--port-template", help="Candidate device name with an {n} placeholder, e.g. COM{n}")
@click.option("--run-for", type=float, help="Stop after this many seconds [default: unlimited]")
@click.option("--poll-interval", type=float, help="Seconds between reads [default: 0.1]")
@click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False),
              help="TOML config file [default: ./serial_line_bridge.toml if present]")
@click.option("--list", "list_ports", is_flag=True, help="List candidate ports and exit")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def main(port: Optional[str], baudrate: Optional[int], highest: Optional[int], lowest: Optional[int],
         port_template: Optional[str], run_for: Optional[float], poll_interval: Optional[float],
         config_path: Optional[str], list_ports: bool, verbose: bool) -> None:
    """Exchange newline terminated text with a microcontroller.

    Received lines are printed, trigger characters (default: 'b') ring the
    terminal bell, and every line is acknowledged. Press Ctrl-C to stop.

    Examples:

      # Search COM20..COM0 (or /dev/ttyACM20..0) and run until Ctrl-C
      serial-line-bridge

      # Use a specific port for seven seconds
      serial-line-bridge -p /dev/ttyUSB0 --run-for 7
    """
    _configure_logging(verbose)
    notifier = ConsoleNotifier()

    try:
        config = load_config(config_path)
        if baudrate is not None:
            config.port.baudrate = baudrate
        if highest is not None:
            config.highest = highest
        if lowest is not None:
            config.lowest = lowest
        if port_template is not None:
            config.port_template = port_template
        if run_for is not None:
            config.run_for = run_for
        if poll_interval is not None:
            config.poll_interval = poll_interval
        config.validate()

        if list_ports:
            locator = PortLocator(config.port, template=config.port_template)
            for name, exists, valid in locator.survey(config.candidates):
                status = "serial device" if valid else ("rejected" if exists else "absent")
                click.echo(f"{name}\t{status}")
            return

        session = _open_session(config, port, notifier)
    except BridgeError as e:
        raise click.ClickException(str(e))

    cancel = CancelFlag()
    try:
        click.echo(f"Connected to {session.port}. Press Ctrl-C to stop.")
        cancel.install()
        dispatcher = Dispatcher(
            session,
            FrameReader(config.line_capacity, config.trigger_bytes()),
            notifier,
            effects=_effects(config, notifier),
            acknowledgement=config.acknowledgement,
            poll_interval=config.poll_interval,
            run_for=config.run_for,
            cancelled=cancel,
        )
        ticks = dispatcher.run()
        _logger.debug("Stopped after %d tick(s)", ticks)
    finally:
        cancel.uninstall()
        session.close()


if __name__ == "__main__":
    main()
