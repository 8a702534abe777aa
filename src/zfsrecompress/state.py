"""Run-wide flags shared by the walker, the workers and the signal handler."""

import threading

REASON_INTERRUPT = "interrupt"
REASON_WORKER_FAILURE = "global error"


class CancellationToken:
    """A one-way switch polled by the walker. Once cancelled it stays cancelled."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class RunState:
    """
    Abort and failure flags for one run.

    Both flags are monotonic and backed by threading.Event, so they are safe
    to read and set from the event loop, executor threads and signal handlers.
    """

    def __init__(self, abort_token: CancellationToken | None = None):
        self.abort_token = abort_token or CancellationToken()
        self._failed = threading.Event()

    def request_abort(self) -> None:
        self.abort_token.cancel()

    def mark_failed(self) -> None:
        self._failed.set()

    @property
    def abort_requested(self) -> bool:
        return self.abort_token.cancelled

    @property
    def any_worker_failed(self) -> bool:
        return self._failed.is_set()

    @property
    def should_stop(self) -> bool:
        return self.any_worker_failed or self.abort_requested

    @property
    def stop_reason(self) -> str | None:
        """Why the walk should stop; worker failure is reported first."""
        if self.any_worker_failed:
            return REASON_WORKER_FAILURE
        if self.abort_requested:
            return REASON_INTERRUPT
        return None
