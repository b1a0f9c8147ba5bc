"""Cooperative cancellation for long-running fetches."""

import threading
from typing import Optional

from .errors import ExtractionCancelledError


class CancellationToken:
    """Thread-safe flag checked at every network round trip.

    A token is created by the caller, passed into an extraction, and may be
    cancelled from any other thread. Blocking waits (retry backoff) return
    early once the token is cancelled.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, operation: Optional[str] = None) -> None:
        """Raise ExtractionCancelledError if cancellation was requested."""
        if self._event.is_set():
            message = f"{operation} cancelled" if operation else "Operation cancelled"
            raise ExtractionCancelledError(message, operation=operation)

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; returns True if cancelled meanwhile."""
        return self._event.wait(timeout)
