"""SIGINT handling: stop producing new work, let in-flight work finish."""

import asyncio
import logging
import signal

from .state import RunState


class CancellationController:
    """
    Turns the first interrupt into an abort request on the run state.

    Cancellation is cooperative: the walker stops enqueueing, queued and
    in-flight files are still processed. Further interrupts are only logged.
    """

    def __init__(self, run_state: RunState, logger: logging.Logger, signum: int = signal.SIGINT):
        self.run_state = run_state
        self.logger = logger
        self.signum = signum
        self.interrupts = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous_handler = None
        self._installed = False

    def trigger(self) -> None:
        """React to an interrupt (called from the signal handler, or directly in tests)."""
        self.interrupts += 1
        if self.interrupts == 1:
            self.run_state.request_abort()
            self.logger.warning("Terminating, please wait for workers to finish in-flight work ...")
        else:
            self.logger.debug(f"Interrupt #{self.interrupts} ignored, already finishing in-flight work")

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if self._installed:
            return
        self._loop = loop or asyncio.get_running_loop()
        try:
            self._loop.add_signal_handler(self.signum, self.trigger)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no add_signal_handler
            self._loop = None
            try:
                self._previous_handler = signal.signal(self.signum, lambda signum, frame: self.trigger())
            except ValueError:
                # Not the main thread: nothing can deliver the signal to us
                self.logger.debug("Interrupt handler not installed outside the main thread")
                return
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        if self._loop is not None:
            self._loop.remove_signal_handler(self.signum)
        else:
            signal.signal(self.signum, self._previous_handler)
        self._installed = False
        self._loop = None
