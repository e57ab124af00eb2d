"""
Cooperative cancellation for long-running operations.

Remote listing, downloads, extraction and cache walks poll a
``CancellationToken`` at their suspension points and abort with
``OperationCancelled`` once it is set.
"""

import threading
from typing import Optional

from govm.core.exceptions import OperationCancelled


class CancellationToken:
    """
    Caller-owned cancellation signal.

    Example:
        >>> token = CancellationToken()
        >>> threading.Timer(5, token.cancel).start()
        >>> manager.install("1.22.3", cancel=token)
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str = "") -> None:
        """Request cancellation."""
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelled if cancellation was requested."""
        if self._event.is_set():
            raise OperationCancelled(self.reason or "Operation cancelled")

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout seconds, returning early (True) when cancelled."""
        return self._event.wait(timeout)


def check_cancelled(token: Optional[CancellationToken]) -> None:
    """Raise OperationCancelled if token is set; no-op for None."""
    if token is not None:
        token.raise_if_cancelled()


def sleep(seconds: float, token: Optional[CancellationToken] = None) -> None:
    """Interruptible sleep used for retry backoff."""
    if token is None:
        threading.Event().wait(seconds)
        return
    if token.wait(seconds):
        token.raise_if_cancelled()
