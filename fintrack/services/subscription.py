"""
Subscription handles.

Every listener registration in fintrack (store snapshots, identity
sessions, engine state) returns one of these instead of a bare
unsubscribe callback, so consumers can cancel explicitly and check
whether they are still attached.
"""

from typing import Callable, Optional


class Subscription:
    """Cancellation handle for a registered listener."""

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None):
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Detach the listener. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        if self._on_cancel is not None:
            self._on_cancel()
            self._on_cancel = None
