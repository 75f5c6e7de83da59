"""
Capture Errors

Taxonomy:
- StrategyFailure: one strategy errored; the next one runs
- ValidationRejected: a candidate was obtained but scored too low
- SessionExhausted: every strategy failed or was rejected (terminal)
- DriverFault: the automation driver is unusable; aborts the session
- AcquisitionCancelled: the caller cancelled; raised after cleanup
- SessionFinalized: a finalized session was written to again (programming error)
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class CaptureError(Exception):
    """Base class for all capture errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    @property
    def kind(self) -> str:
        return type(self).__name__


class StrategyFailure(CaptureError):
    """A single strategy failed; recoverable."""

    def __init__(self, message: str, strategy_id: Optional[str] = None, **details: Any):
        super().__init__(message, details)
        self.strategy_id = strategy_id


class ValidationRejected(CaptureError):
    """A candidate failed content scoring; recoverable."""

    def __init__(self, message: str, score: int = 0, **details: Any):
        super().__init__(message, details)
        self.score = score


class SessionExhausted(CaptureError):
    """All strategies ran without producing a valid artifact."""

    def __init__(self, message: str, attempts: Sequence[Any] = ()):
        super().__init__(message, {"attempts": len(attempts)})
        self.attempts = tuple(attempts)


class DriverFault(CaptureError):
    """The automation driver itself is dead; nothing else can run."""


class AcquisitionCancelled(CaptureError):
    """Cancellation was requested while the session was running."""


class SessionFinalized(CaptureError):
    """An attempt or acceptance arrived after the session was finalized."""
