"""Cooperative cancellation for ingestion runs executing in worker threads."""
from __future__ import annotations

import threading

from taxdoc.errors import IngestionCancelledError


class CancellationToken:
    """Thread-safe flag checked by the pipeline between pages and stages."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise IngestionCancelledError(f"Ingestion {self.reason or 'cancelled'}")


NEVER_CANCELLED = CancellationToken()
