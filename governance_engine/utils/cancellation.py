"""Cooperative cancellation tokens backed by threading.Event."""

import threading
from typing import Optional

from ..exceptions import AnalysisCancelledError


class CancellationToken:
    """
    Cancellation flag that can be chained to a parent token.

    A child token reports cancelled when either it or any ancestor has been
    cancelled, so cancelling an assessment reaches every analyzer while a
    single timed-out analyzer can be cancelled without touching its siblings.
    """

    def __init__(self, parent: Optional["CancellationToken"] = None, reason: str = "cancelled"):
        self._event = threading.Event()
        self._parent = parent
        self.reason = reason

    def cancel(self, reason: Optional[str] = None) -> None:
        if reason:
            self.reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.is_cancelled

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)

    def raise_if_cancelled(self) -> None:
        """
        Raises:
            AnalysisCancelledError: If this token or an ancestor is cancelled
        """
        if self.is_cancelled:
            raise AnalysisCancelledError(self._effective_reason())

    def _effective_reason(self) -> str:
        if self._event.is_set() or self._parent is None:
            return self.reason
        return self._parent._effective_reason()


class WorkerSlots:
    """
    Bound on analyzers running at once, shared by every nesting level.

    Waiting for a slot polls the caller's token, so a unit queued behind a
    hung analyzer can still be cancelled or timed out.

    Args:
        size: Number of analyzers allowed to run concurrently
    """

    def __init__(self, size: int):
        self.size = size
        self._semaphore = threading.BoundedSemaphore(size)

    def acquire(self, token: CancellationToken, poll_interval: float) -> None:
        """
        Block until a slot is free.

        Raises:
            AnalysisCancelledError: If the token is cancelled while waiting
        """
        while not self._semaphore.acquire(timeout=poll_interval):
            token.raise_if_cancelled()
        if token.is_cancelled:
            self._semaphore.release()
            token.raise_if_cancelled()

    def release(self) -> None:
        self._semaphore.release()
