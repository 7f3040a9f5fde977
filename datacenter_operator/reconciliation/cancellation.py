"""
Explicit cancellation/deadline token, passed into every I/O-capable call.

The token is an argument, never a field of the reconciliation context, so
its scope is always the single call chain it was handed to.
"""
import threading
import time
from typing import Optional

from datacenter_operator.errors import ReconciliationCancelled


class CancellationToken:
    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self, step: str) -> None:
        """Raise ReconciliationCancelled if the caller gave up on this request."""
        if self.cancelled:
            raise ReconciliationCancelled(step, "reconciliation cancelled")
        if self.expired:
            raise ReconciliationCancelled(step, "reconciliation deadline exceeded")


def background() -> CancellationToken:
    """A token that is never cancelled and has no deadline."""
    return CancellationToken()
