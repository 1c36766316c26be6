"""Turn SIGINT and SIGTERM into a single interruption callback."""

from __future__ import annotations

import signal
from typing import Any, Callable, Optional


def _handled_signals() -> list[signal.Signals]:
    names = ("SIGINT", "SIGTERM", "SIGBREAK")
    return [getattr(signal, name) for name in names if hasattr(signal, name)]


class InterruptSignalHandler:
    """Calls ``on_interrupted`` when the process is asked to stop.

    On the first signal the previous handlers are put back, so a second
    signal can stop a process that hangs while shutting down.
    """

    def __init__(self, on_interrupted: Callable[[], object]) -> None:
        self._on_interrupted = on_interrupted
        self._previous: dict[signal.Signals, Any] = {}
        self.interrupted = False

    @property
    def installed(self) -> bool:
        """Whether the handler is currently installed."""
        return bool(self._previous)

    def install(self) -> None:
        """Install the handler for the interrupt signals."""
        if self._previous:
            return
        try:
            for signum in _handled_signals():
                self._previous[signum] = signal.signal(signum, self._handle)
        except (OSError, ValueError):
            self.restore()
            raise

    def restore(self) -> None:
        """Put back the handlers that were active before installing."""
        previous, self._previous = self._previous, {}
        for signum, handler in previous.items():
            signal.signal(signum, signal.SIG_DFL if handler is None else handler)

    def _handle(self, signum: int, frame: Optional[object]) -> None:
        self.restore()
        self.interrupted = True
        self._on_interrupted()

    def __enter__(self) -> InterruptSignalHandler:
        self.install()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.restore()
        return False