from __future__ import annotations

import threading
import time

import pytest

from acquisition.cancellation import CancelToken
from acquisition.errors import AcquisitionCancelled, SessionExhausted, SessionFinalized
from acquisition.models import (
    AcquisitionAttempt, AcquisitionFailure, AcquisitionSession, AttemptOutcome,
    CandidateArtifact, SessionOutcome
)
from validation import validate

from conftest import notice_pdf, web_page_pdf


def _candidate(data: bytes, strategy_id: str = "embedded_content") -> CandidateArtifact:
    return CandidateArtifact(data=data, source_strategy_id=strategy_id, inferred_filename="notice.pdf")


def test_session_accepts_valid_candidate_and_freezes_log() -> None:
    session = AcquisitionSession("Acme Holdings LLC", correlation_key="12-3456789")
    session.record(AcquisitionAttempt("programmatic_export_full_page", AttemptOutcome.FAILURE, error_detail="boom"))

    data = notice_pdf()
    session.accept(_candidate(data), validate(data))

    assert session.outcome is SessionOutcome.ACCEPTED
    assert session.is_finalized
    assert session.finished_at is not None
    with pytest.raises(SessionFinalized):
        session.record(AcquisitionAttempt("direct_fetch", AttemptOutcome.FAILURE))
    with pytest.raises(SessionFinalized):
        session.finalize(SessionOutcome.EXHAUSTED)
    assert len(session.attempts) == 1


def test_session_refuses_invalid_candidate() -> None:
    session = AcquisitionSession("Acme Holdings LLC")
    data = web_page_pdf()

    with pytest.raises(ValueError):
        session.accept(_candidate(data), validate(data))
    assert not session.is_finalized


def test_finalize_rejects_non_terminal_outcomes() -> None:
    session = AcquisitionSession("Acme Holdings LLC")
    with pytest.raises(ValueError):
        session.finalize(SessionOutcome.ACCEPTED)
    with pytest.raises(ValueError):
        session.finalize(SessionOutcome.PENDING)

    session.finalize(SessionOutcome.CANCELLED)
    assert session.outcome is SessionOutcome.CANCELLED


def test_summary_lists_attempts_without_bytes() -> None:
    session = AcquisitionSession("Acme Holdings LLC", session_id="abc")
    candidate = _candidate(web_page_pdf())
    session.record(AcquisitionAttempt("embedded_content", AttemptOutcome.REJECTED, candidate=candidate, score=-100))
    session.finalize(SessionOutcome.EXHAUSTED)

    summary = session.summary()
    assert summary["session_id"] == "abc"
    assert summary["outcome"] == "exhausted"
    assert summary["accepted_artifact"] is None
    assert summary["attempts"][0]["outcome"] == "rejected"
    assert summary["attempts"][0]["candidate"]["size_bytes"] == len(candidate.data)
    assert "data" not in summary["attempts"][0]["candidate"]


def test_attempt_log_is_a_copy() -> None:
    session = AcquisitionSession("Acme Holdings LLC")
    session.record(AcquisitionAttempt("direct_fetch", AttemptOutcome.FAILURE))
    attempts = session.attempts
    session.record(AcquisitionAttempt("filesystem_scan", AttemptOutcome.FAILURE))

    assert len(attempts) == 1
    assert [a.strategy_id for a in session.attempts] == ["direct_fetch", "filesystem_scan"]


def test_attempt_error_kind_follows_outcome() -> None:
    rejected = AcquisitionAttempt("embedded_content", AttemptOutcome.REJECTED, error_detail="score 40 below threshold 60")
    failed = AcquisitionAttempt("direct_fetch", AttemptOutcome.FAILURE, error_detail="HTTP 403")
    accepted = AcquisitionAttempt("filesystem_scan", AttemptOutcome.SUCCESS)

    assert rejected.to_dict()["error_kind"] == "ValidationRejected"
    assert failed.to_dict()["error_kind"] == "StrategyFailure"
    assert accepted.error_kind is None


def test_failure_to_dict_names_the_error_kind() -> None:
    error = SessionExhausted("All strategies failed", attempts=())
    failure = AcquisitionFailure(session_id="s1", error=error, attempts=())

    payload = failure.to_dict()
    assert payload == {
        "ok": False,
        "session_id": "s1",
        "error": "SessionExhausted",
        "message": "All strategies failed",
        "attempts": [],
    }


# ---------------------------------------------------------------------------
# cancellation
# ---------------------------------------------------------------------------

def test_cancel_token_raises_with_reason() -> None:
    token = CancelToken()
    token.raise_if_cancelled()

    token.cancel("user closed the tab")
    assert token.is_cancelled
    with pytest.raises(AcquisitionCancelled, match="user closed the tab"):
        token.raise_if_cancelled()


def test_cancel_interrupts_sleep_from_another_thread() -> None:
    token = CancelToken()
    timer = threading.Timer(0.05, token.cancel)
    timer.start()

    started = time.monotonic()
    with pytest.raises(AcquisitionCancelled):
        token.sleep(10)
    assert time.monotonic() - started < 5
    timer.join()


def test_zero_sleep_returns_immediately() -> None:
    CancelToken().sleep(0)
