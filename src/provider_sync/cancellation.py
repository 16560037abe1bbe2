"""Cooperative cancellation for reconciliation passes."""

import threading

from provider_sync.utils.errors import ReconciliationCancelled


class CancellationToken:
    """Thread-safe flag checked at remote listing and between orphan transactions."""

    def __init__(self):
        self._event = threading.Event()
        self.reason = None

    def cancel(self, reason: str = "cancellation requested") -> None:
        self.reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, operation: str = "") -> None:
        """Raise ReconciliationCancelled if cancellation was requested."""
        if self._event.is_set():
            where = f" during {operation}" if operation else ""
            raise ReconciliationCancelled(f"Reconciliation cancelled{where}: {self.reason}")
