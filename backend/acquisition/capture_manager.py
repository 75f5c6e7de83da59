"""
Capture Manager: Orchestrate, Persist, Report

Ties one capture request together:

1. Build a SessionContext from the live browser (cookies, user agent)
2. Run the Orchestrator (triggers, then acquire strategies)
3. Upload the accepted notice under its deterministic key, with provenance
   and blob tags
4. Write a JSON session report next to it ({record}-capture.json)

Strategy-level problems never raise out of capture(); they come back as a
CaptureOutcome with ok=False. Cancellation still propagates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
import logging

from capture_config import get_config
from files.artifact_store import ArtifactStore, DiskArtifactStore, build_notice_key, notice_tags
from files.session_context import SessionContext
from provenance import Provenance

from .cancellation import CancelToken
from .errors import DriverFault
from .models import AcquisitionAttempt, AcquisitionSession, SessionOutcome
from .orchestrator import Orchestrator

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


@dataclass(frozen=True)
class CaptureRequest:
    """
    What to capture and how to file it.

    Attributes:
        target_name: Entity the notice is for (storage folder, logs)
        correlation_key: Record key the notice must mention (e.g. the EIN)
        account_id / entity_id / case_id: Blob tags for downstream systems
        hidden_from_client: Tag value controlling client visibility
    """
    target_name: str
    correlation_key: Optional[str] = None
    account_id: Optional[str] = None
    entity_id: Optional[str] = None
    case_id: Optional[str] = None
    hidden_from_client: bool = False


@dataclass(frozen=True)
class CaptureOutcome:
    """
    Result of a capture request.

    Attributes:
        ok: True if a validated notice was stored
        url: Storage URL of the notice
        key: Storage key of the notice
        session_id: Capture session identifier
        attempts: Full attempt log
        error: Error kind and message if failed
        report_url: Storage URL of the JSON session report
    """
    ok: bool
    session_id: str
    url: Optional[str] = None
    key: Optional[str] = None
    attempts: Tuple[AcquisitionAttempt, ...] = ()
    error: Optional[str] = None
    report_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "ok": self.ok,
            "session_id": self.session_id,
            "url": self.url,
            "key": self.key,
            "attempts": [a.to_dict() for a in self.attempts],
            "error": self.error,
            "report_url": self.report_url,
        }


class CaptureManager:
    """
    Runs captures and persists their results.

    Usage:
        store = DiskArtifactStore("/data/artifacts")
        cm = CaptureManager(store=store)

        outcome = cm.capture(driver, CaptureRequest("Acme LLC", correlation_key="12-3456789"))
        if outcome.ok:
            print(f"Stored: {outcome.url}")
        else:
            print(f"Failed: {outcome.error}")
    """

    def __init__(
        self,
        *,
        store: ArtifactStore,
        orchestrator: Optional[Orchestrator] = None
    ):
        """
        Initialize capture manager.

        Args:
            store: ArtifactStore implementation for persisting notices
            orchestrator: Orchestrator to run (default strategies if omitted)
        """
        self.store = store
        self.orchestrator = orchestrator or Orchestrator()
        logger.info(
            f"[CAPTURE] Initialized ({len(self.orchestrator.triggers)} triggers, "
            f"{len(self.orchestrator.strategies)} strategies)"
        )

    def capture(
        self,
        driver: Any,
        request: CaptureRequest,
        cancel: Optional[CancelToken] = None
    ) -> CaptureOutcome:
        """
        Capture, validate and store one notice.

        Args:
            driver: AutomationDriver on the confirmation page
            request: CaptureRequest describing the record
            cancel: Optional cancellation token

        Returns:
            CaptureOutcome with result details

        Raises:
            AcquisitionCancelled: If cancelled (session report is still written)
        """
        session = AcquisitionSession(request.target_name, request.correlation_key)
        key = build_notice_key(request.target_name, request.correlation_key)
        report_key = key[: -len("-EINLetter.pdf")] + "-capture.json"
        logger.info(f"[CAPTURE] Starting session {session.session_id} -> {key}")

        try:
            try:
                session_ctx = SessionContext.from_driver(driver, request.correlation_key)
            except DriverFault as e:
                logger.error(f"[CAPTURE] Driver unusable before capture: {e}")
                session.finalize(SessionOutcome.ABORTED)
                return CaptureOutcome(ok=False, session_id=session.session_id, key=key, error=f"{e.kind}: {e.message}")
            except Exception as e:
                logger.error(f"[CAPTURE] Could not read session context: {type(e).__name__}: {e}")
                session.finalize(SessionOutcome.ABORTED)
                return CaptureOutcome(
                    ok=False, session_id=session.session_id, key=key, error=f"{type(e).__name__}: {e}"
                )

            outcome = self.orchestrator.acquire(
                driver,
                session_ctx,
                target_name=request.target_name,
                correlation_key=request.correlation_key,
                cancel=cancel,
                session=session,
            )
        finally:
            report_url = self._write_report(report_key, session, request)

        if not outcome.ok:
            error = f"{outcome.error.kind}: {outcome.error.message}"
            logger.warning(f"[CAPTURE] Session {session.session_id} failed: {error}")
            return CaptureOutcome(
                ok=False,
                session_id=session.session_id,
                key=key,
                attempts=outcome.attempts,
                error=error,
                report_url=report_url,
            )

        accepted = outcome.accepted
        prov = Provenance.now(
            session.session_id,
            accepted.source_strategy_id,
            source_url=accepted.source_url,
            validation_score=outcome.validation.score,
            correlation_key=request.correlation_key,
            meta={
                "target_name": request.target_name,
                "inferred_filename": accepted.inferred_filename,
                "extraction_method": outcome.validation.extraction_method,
            },
        ).with_artifact_hash(accepted.data)

        tags = notice_tags(
            account_id=request.account_id,
            entity_id=request.entity_id,
            case_id=request.case_id,
            hidden_from_client=request.hidden_from_client,
        )

        try:
            url = self.store.upload(accepted.data, key, PDF_CONTENT_TYPE, tags=tags, provenance=prov)
        except (OSError, ValueError) as e:
            logger.error(f"[CAPTURE] Upload failed for {key}: {e}")
            return CaptureOutcome(
                ok=False,
                session_id=session.session_id,
                key=key,
                attempts=outcome.attempts,
                error=f"UploadFailed: {e}",
                report_url=report_url,
            )

        logger.info(f"[CAPTURE] Success: {key} ({accepted.size_bytes} bytes, score={outcome.validation.score})")
        return CaptureOutcome(
            ok=True,
            session_id=session.session_id,
            url=url,
            key=key,
            attempts=outcome.attempts,
            report_url=report_url,
        )

    def _write_report(
        self,
        report_key: str,
        session: AcquisitionSession,
        request: CaptureRequest
    ) -> Optional[str]:
        report = session.summary()
        report["request"] = {
            "target_name": request.target_name,
            "correlation_key": request.correlation_key,
            "account_id": request.account_id,
            "entity_id": request.entity_id,
            "case_id": request.case_id,
        }
        try:
            return self.store.put_json(report_key, report)
        except (OSError, ValueError) as e:
            logger.error(f"[CAPTURE] Could not write session report {report_key}: {e}")
            return None


# Global capture manager instance
_manager: Optional[CaptureManager] = None


def get_capture_manager(store_path: Optional[str] = None) -> CaptureManager:
    """
    Get or create the global capture manager instance.

    Args:
        store_path: Path for artifact storage (CAPTURE_ARTIFACT_ROOT if omitted)

    Returns:
        CaptureManager instance
    """
    global _manager
    if _manager is None:
        store = DiskArtifactStore(store_path or get_config().artifact_root)
        _manager = CaptureManager(store=store)
    return _manager
