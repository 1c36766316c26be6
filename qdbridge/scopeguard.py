"""Run a cleanup action when a scope is left, unless dismissed."""

from __future__ import annotations

from typing import Callable, Optional


class ScopeGuard:
    """Calls a function once on close or on leaving a ``with`` block."""

    def __init__(self, function: Callable[[], object]) -> None:
        self._function: Optional[Callable[[], object]] = function

    def dismiss(self) -> None:
        """Cancel the pending action."""
        self._function = None

    def close(self) -> None:
        """Run the pending action, if any; later calls do nothing."""
        function, self._function = self._function, None
        if function is not None:
            function()

    def __enter__(self) -> ScopeGuard:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False