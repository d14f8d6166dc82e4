"""
Cooperative cancellation for reconcile work

A token is shared by the supervisor and every reconcile it starts. Reconcile
steps check it between external calls; committed progress is never rolled back.
"""

import threading
import time
from collections.abc import Callable

from .errors import ReconcileCancelledError


class CancellationToken:
    """Thread-safe cancellation flag with an optional parent and deadline"""

    def __init__(
        self,
        parent: "CancellationToken | None" = None,
        deadline: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._event = threading.Event()
        self._parent = parent
        self._deadline = deadline
        self._clock = clock
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and self._clock() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        if self._parent is not None and self._parent.cancelled:
            self.cancel(self._parent.reason or "parent cancelled")
            return True
        return False

    def raise_if_cancelled(self, step: str) -> None:
        """
        Raises:
            ReconcileCancelledError: If the token (or its parent) is cancelled
        """
        if self.cancelled:
            raise ReconcileCancelledError(f"Cancelled before {step}: {self.reason}")

    def child(self, timeout: float | None = None) -> "CancellationToken":
        """A token cancelled with this one, or on its own after timeout seconds"""
        deadline = self._clock() + timeout if timeout is not None else None
        return CancellationToken(parent=self, deadline=deadline, clock=self._clock)

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout seconds; returns True if cancelled meanwhile"""
        if self._deadline is not None:
            timeout = min(timeout, max(0.0, self._deadline - self._clock()))
        self._event.wait(timeout)
        return self.cancelled
