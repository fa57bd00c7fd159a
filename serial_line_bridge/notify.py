from __future__ import annotations

import logging
import signal
import threading

import click

_logger = logging.getLogger(__name__)


class ConsoleNotifier:
    """User notifications on the terminal."""

    def show_message(self, title: str, text: str) -> None:
        click.secho(f"{title}: ", fg="cyan", nl=False)
        click.echo(text)

    def warn(self, text: str) -> None:
        click.secho(f"error: {text}", fg="red", err=True)

    def beep(self) -> None:
        # terminal bell
        click.echo("\a", nl=False)


class CancelFlag:
    """
    Cancellation source polled by the dispatcher.
    Calling the instance returns True once cancel() has been called.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._previous = None
        self._installed = False

    def cancel(self) -> None:
        self._event.set()

    def __call__(self) -> bool:
        return self._event.is_set()

    def install(self) -> None:
        """Make Ctrl-C request a clean stop instead of raising KeyboardInterrupt."""
        def _handler(signum, frame):
            _logger.info("Stop requested")
            self.cancel()

        self._previous = signal.signal(signal.SIGINT, _handler)
        self._installed = True

    def uninstall(self) -> None:
        """Put back the SIGINT handler that install() replaced."""
        if not self._installed:
            return
        previous = self._previous if self._previous is not None else signal.default_int_handler
        signal.signal(signal.SIGINT, previous)
        self._previous = None
        self._installed = False
