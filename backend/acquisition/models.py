"""
Acquisition Models: Session, Attempts and Candidates

- CandidateArtifact: bytes a strategy produced, not yet confirmed
- AcquisitionAttempt: one immutable entry in a session's attempt log
- AcquisitionSession: one end-to-end capture; finalized exactly once
- AcquisitionResult / AcquisitionFailure: what the orchestrator hands back
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import uuid

from validation import ValidationResult

from .errors import CaptureError, SessionFinalized, StrategyFailure, ValidationRejected


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    REJECTED = "rejected"


class SessionOutcome(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXHAUSTED = "exhausted"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class CandidateArtifact:
    """
    Bytes obtained by a strategy, not yet confirmed to be the notice.

    Attributes:
        data: Raw candidate bytes
        source_strategy_id: Strategy that produced the bytes
        inferred_filename: Filename from disk or Content-Disposition, if known
        source_url: URL the bytes came from, if any
        discovered_at: ISO 8601 timestamp of discovery
    """
    data: bytes
    source_strategy_id: str
    inferred_filename: Optional[str] = None
    source_url: Optional[str] = None
    discovered_at: str = field(default_factory=utc_now_iso)

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    def to_dict(self) -> Dict[str, Any]:
        """Metadata only; the bytes are never serialized here."""
        return {
            "source_strategy_id": self.source_strategy_id,
            "inferred_filename": self.inferred_filename,
            "source_url": self.source_url,
            "size_bytes": self.size_bytes,
            "discovered_at": self.discovered_at,
        }

    def __repr__(self) -> str:
        return (
            f"CandidateArtifact(strategy='{self.source_strategy_id}', "
            f"size={self.size_bytes}, filename={self.inferred_filename!r})"
        )


@dataclass(frozen=True)
class AcquisitionAttempt:
    """One strategy run (or one candidate of it) in the session log."""
    strategy_id: str
    outcome: AttemptOutcome
    candidate: Optional[CandidateArtifact] = None
    error_detail: Optional[str] = None
    score: Optional[int] = None
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def error_kind(self) -> Optional[str]:
        """Error class a non-success outcome corresponds to."""
        if self.outcome is AttemptOutcome.REJECTED:
            return ValidationRejected.__name__
        if self.outcome is AttemptOutcome.FAILURE:
            return StrategyFailure.__name__
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy_id": self.strategy_id,
            "outcome": self.outcome.value,
            "error_kind": self.error_kind,
            "candidate": self.candidate.to_dict() if self.candidate else None,
            "error_detail": self.error_detail,
            "score": self.score,
            "timestamp": self.timestamp,
        }


class AcquisitionSession:
    """
    One capture request from start to finalization.

    The attempt log is append-only and frozen once the session is finalized,
    either by accept() or by finalize() with a terminal outcome.
    """

    def __init__(
        self,
        target_name: str,
        correlation_key: Optional[str] = None,
        session_id: Optional[str] = None
    ):
        self.session_id = session_id or uuid.uuid4().hex
        self.target_name = target_name
        self.correlation_key = correlation_key
        self.started_at = utc_now_iso()
        self.finished_at: Optional[str] = None
        self.outcome = SessionOutcome.PENDING
        self.accepted_artifact: Optional[CandidateArtifact] = None
        self.accepted_validation: Optional[ValidationResult] = None
        self._attempts: List[AcquisitionAttempt] = []

    @property
    def attempts(self) -> Tuple[AcquisitionAttempt, ...]:
        return tuple(self._attempts)

    @property
    def is_finalized(self) -> bool:
        return self.outcome is not SessionOutcome.PENDING

    def _ensure_open(self, action: str) -> None:
        if self.is_finalized:
            raise SessionFinalized(
                f"Cannot {action}: session {self.session_id} already {self.outcome.value}"
            )

    def record(self, attempt: AcquisitionAttempt) -> AcquisitionAttempt:
        self._ensure_open("record attempt")
        self._attempts.append(attempt)
        return attempt

    def accept(self, candidate: CandidateArtifact, validation: ValidationResult) -> None:
        """Accept the candidate and finalize the session."""
        self._ensure_open("accept artifact")
        if not validation.is_valid or validation.score < validation.threshold:
            raise ValueError(
                f"Refusing to accept candidate with score {validation.score} "
                f"(threshold {validation.threshold})"
            )
        self.accepted_artifact = candidate
        self.accepted_validation = validation
        self.outcome = SessionOutcome.ACCEPTED
        self.finished_at = utc_now_iso()

    def finalize(self, outcome: SessionOutcome) -> None:
        """Finalize without an artifact (exhausted, aborted or cancelled)."""
        self._ensure_open("finalize")
        if outcome in (SessionOutcome.PENDING, SessionOutcome.ACCEPTED):
            raise ValueError(f"finalize() needs a terminal non-accepted outcome, got {outcome.value}")
        self.outcome = outcome
        self.finished_at = utc_now_iso()

    def summary(self) -> Dict[str, Any]:
        """Diagnostic snapshot of the whole session."""
        return {
            "session_id": self.session_id,
            "target_name": self.target_name,
            "correlation_key": self.correlation_key,
            "outcome": self.outcome.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "accepted_artifact": self.accepted_artifact.to_dict() if self.accepted_artifact else None,
            "accepted_score": self.accepted_validation.score if self.accepted_validation else None,
            "attempts": [a.to_dict() for a in self._attempts],
        }

    def __repr__(self) -> str:
        return (
            f"AcquisitionSession(id='{self.session_id}', target='{self.target_name}', "
            f"attempts={len(self._attempts)}, outcome={self.outcome.value})"
        )


@dataclass(frozen=True)
class AcquisitionResult:
    """A validated artifact plus the full attempt log."""
    session_id: str
    accepted: CandidateArtifact
    validation: ValidationResult
    attempts: Tuple[AcquisitionAttempt, ...]
    ok: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "session_id": self.session_id,
            "accepted": self.accepted.to_dict(),
            "validation": self.validation.to_dict(),
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass(frozen=True)
class AcquisitionFailure:
    """No artifact; error is SessionExhausted, DriverFault or an unexpected CaptureError."""
    session_id: str
    error: CaptureError
    attempts: Tuple[AcquisitionAttempt, ...]
    ok: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "session_id": self.session_id,
            "error": self.error.kind,
            "message": self.error.message,
            "attempts": [a.to_dict() for a in self.attempts],
        }
