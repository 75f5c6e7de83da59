"""
Provenance: Traceability for Captured Notices

Every stored notice carries an immutable provenance record that answers:
- When was it captured, and in which capture session
- Which strategy produced the bytes, and from where (URL, file, print)
- What the validator thought of it (score)
- A SHA-256 of the exact bytes stored

This lets anyone holding a stored notice point back to the session and
technique that produced it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from datetime import datetime, timezone
import hashlib


def sha256_bytes(b: bytes) -> str:
    """Compute SHA-256 hash of raw bytes."""
    return hashlib.sha256(b).hexdigest()


@dataclass(frozen=True)
class Provenance:
    """
    Traceability object attached to every stored notice.

    Attributes:
        captured_at: ISO 8601 timestamp when the notice was accepted
        session_id: Capture session that produced it
        strategy_id: Acquisition strategy that produced the bytes
        source_url: URL or file URI the bytes came from, if any
        artifact_hash: SHA-256 hash over the stored bytes
        validation_score: Validator score at acceptance
        correlation_key: Record key the notice was matched against
        meta: Additional metadata dictionary
    """
    captured_at: str  # ISO 8601
    session_id: str
    strategy_id: str
    source_url: Optional[str] = None

    artifact_hash: Optional[str] = None
    validation_score: Optional[int] = None
    correlation_key: Optional[str] = None

    meta: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def now(session_id: str, strategy_id: str, **kwargs) -> "Provenance":
        """
        Create a Provenance object with current timestamp.

        Args:
            session_id: Capture session identifier
            strategy_id: Strategy that produced the artifact
            **kwargs: Additional fields (source_url, artifact_hash, ...)

        Returns:
            Provenance object with current UTC timestamp
        """
        ts = datetime.now(timezone.utc).isoformat()
        return Provenance(captured_at=ts, session_id=session_id, strategy_id=strategy_id, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "captured_at": self.captured_at,
            "session_id": self.session_id,
            "strategy_id": self.strategy_id,
            "source_url": self.source_url,
            "artifact_hash": self.artifact_hash,
            "validation_score": self.validation_score,
            "correlation_key": self.correlation_key,
            "meta": self.meta,
        }

    def with_artifact_hash(self, artifact_bytes: bytes) -> "Provenance":
        """
        Create a new Provenance with the artifact hash set.

        Args:
            artifact_bytes: The raw bytes of the artifact

        Returns:
            New Provenance object with artifact_hash populated
        """
        return Provenance(
            captured_at=self.captured_at,
            session_id=self.session_id,
            strategy_id=self.strategy_id,
            source_url=self.source_url,
            artifact_hash=sha256_bytes(artifact_bytes),
            validation_score=self.validation_score,
            correlation_key=self.correlation_key,
            meta=self.meta,
        )
