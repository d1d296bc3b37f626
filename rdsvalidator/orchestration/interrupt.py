"""
Signal handling.

The first SIGINT/SIGTERM/SIGQUIT sets the run's cancel event and schedules
the teardown callback. The orchestrator's teardown lets the stage in flight
wind down before releasing anything. Later signals are ignored while
teardown runs.
"""

import asyncio
import logging
import signal
from typing import Any, Awaitable, Callable, List, Optional

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGQUIT)


class InterruptCoordinator:
    """Turns termination signals into cancellation plus a single teardown."""

    def __init__(
        self,
        cancel: asyncio.Event,
        on_interrupt: Callable[[], Awaitable[Any]],
        signals=HANDLED_SIGNALS,
    ):
        self.cancel = cancel
        self.on_interrupt = on_interrupt
        self.signals = tuple(signals)
        self.logger = logging.getLogger(self.__class__.__name__)

        self.interrupted = False
        self.received: Optional[int] = None
        self.task: Optional[asyncio.Future] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed: List[int] = []

    def install(self) -> None:
        """Register the handlers on the running event loop."""
        self._loop = asyncio.get_running_loop()
        for signum in self.signals:
            self._loop.add_signal_handler(signum, self.trigger, signum)
            self._installed.append(signum)

    def remove(self) -> None:
        """Restore default handling for every signal registered by :meth:`install`."""
        while self._installed:
            signum = self._installed.pop()
            if self._loop is not None:
                self._loop.remove_signal_handler(signum)

    def trigger(self, signum: int) -> None:
        """Handle ``signum`` as if it had been delivered to the process."""
        name = signal.Signals(signum).name
        if self.interrupted:
            self.logger.warning(
                f"Received {name} while tearing down; teardown continues",
                extra={"signal": name, "phase": "ignored"},
            )
            return

        self.interrupted = True
        self.received = signum
        self.logger.warning(
            f"Received {name}, tearing down",
            extra={"signal": name, "phase": "interrupt"},
        )
        self.cancel.set()
        self.task = asyncio.ensure_future(self.on_interrupt())

    async def wait(self) -> Any:
        """Wait for the teardown started by a signal, if any."""
        if self.task is None:
            return None
        return await self.task

    def __enter__(self) -> "InterruptCoordinator":
        self.install()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.remove()
