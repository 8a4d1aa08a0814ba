"""
Cooperative cancellation shared between the caller and worker threads.
"""

from __future__ import annotations

import threading
from typing import Optional

from .exceptions import OperationCancelled


class CancellationToken:
    """A thread-safe cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "Operation cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self._reason or "Operation cancelled")


def check_cancelled(token: Optional[CancellationToken]) -> None:
    """Raise OperationCancelled if ``token`` has been cancelled."""
    if token is not None:
        token.raise_if_cancelled()
