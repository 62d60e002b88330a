"""Progress reporting for long running install steps.

The orchestrator receives one of these instead of driving a global spinner,
so it can run without a terminal.
"""

import logging
from typing import Optional, Protocol

from rich.console import Console
from rich.status import Status

from .time_format import time_format

logger = logging.getLogger(__name__)


class ProgressReporter(Protocol):
    def start(self, label: str) -> None:
        ...

    def succeed(self, label: str, duration: float) -> None:
        ...

    def stop(self) -> None:
        ...


class NullProgress:
    """Reports nothing."""

    def start(self, label: str) -> None:
        pass

    def succeed(self, label: str, duration: float) -> None:
        pass

    def stop(self) -> None:
        pass


class LoggingProgress:
    """Reports steps to the ``bvm`` log."""

    def start(self, label: str) -> None:
        logger.info("%s...", label)

    def succeed(self, label: str, duration: float) -> None:
        logger.info("%s in %s", label, time_format(duration))

    def stop(self) -> None:
        pass


class SpinnerProgress:
    """Terminal spinner built on rich's status display."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)
        self._status: Optional[Status] = None

    def start(self, label: str) -> None:
        if self._status is None:
            self._status = self.console.status(label)
            self._status.start()
        else:
            self._status.update(label)

    def succeed(self, label: str, duration: float) -> None:
        self.stop()
        self.console.print(f"[green]✔[/green] {label} in {time_format(duration)}")

    def stop(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None
