"""Cooperative cancellation for capture sessions."""

from __future__ import annotations

import threading

from .errors import AcquisitionCancelled


class CancelToken:
    """
    Thread-safe cancellation signal.

    Every wait inside a session goes through sleep() so that cancel() from
    another thread interrupts it immediately instead of after the full delay.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str = ""

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self.reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AcquisitionCancelled(self.reason or "cancelled")

    def sleep(self, seconds: float) -> None:
        """Sleep up to `seconds`, raising AcquisitionCancelled if cancelled meanwhile."""
        if seconds > 0:
            self._event.wait(seconds)
        self.raise_if_cancelled()

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.is_cancelled})"
