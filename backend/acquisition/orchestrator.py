"""
Acquisition Orchestrator: One Capture Session, Start to Cleanup

Phases, strictly sequential:
1. Page preparation (once)
2. Trigger phase: every trigger fires; failures are logged and skipped
3. Acquire phase: strategies in priority order; each candidate is validated
   as soon as it is produced and the first valid one ends the session

After every strategy, windows opened since the session started are swept:
their URL becomes a discovered locator, the window is closed and focus
returns to the original window.

Outcomes:
- AcquisitionResult:                 a validated artifact was accepted
- AcquisitionFailure(SessionExhausted): every strategy ran, nothing validated
- AcquisitionFailure(DriverFault):    the browser died; session aborted
- AcquisitionFailure(CaptureError):   an unexpected error escaped a phase; aborted
- AcquisitionCancelled (raised):      caller cancelled; raised after cleanup

The per-session temp dir and any auxiliary windows are cleaned up on every
exit path.
"""

from __future__ import annotations

from functools import partial
from typing import Any, Callable, Iterable, List, Optional, Sequence, Set, Union
import logging
import shutil
import tempfile

from capture_config import CaptureConfig, get_config
from files.session_context import SessionContext
from validation import DEFAULT_RULES, ValidationResult, validate

from .cancellation import CancelToken
from .errors import AcquisitionCancelled, CaptureError, DriverFault, SessionExhausted, StrategyFailure
from .locators import ElementLocator, LocatorTable
from .models import (
    AcquisitionAttempt,
    AcquisitionFailure,
    AcquisitionResult,
    AcquisitionSession,
    AttemptOutcome,
    SessionOutcome,
)
from .page_prep import prepare_page
from .strategies import AcquisitionStrategy, StrategyContext, default_strategies
from .triggers import TriggerStrategy, default_triggers

logger = logging.getLogger(__name__)

PAGE_PREP_ID = "page_preparation"
WINDOW_SWEEP_ID = "window_sweep"

Validator = Callable[..., ValidationResult]
Outcome = Union[AcquisitionResult, AcquisitionFailure]


class WindowTracker:
    """Remembers the windows open at session start and sweeps new ones."""

    def __init__(self, driver: Any):
        self.driver = driver
        self.original = driver.current_window_handle
        self.baseline: Set[str] = set(driver.window_handles)

    def new_handles(self) -> List[str]:
        return [h for h in self.driver.window_handles if h not in self.baseline]

    def sweep(self) -> List[str]:
        """
        Close windows opened since the session started.

        Returns:
            URLs the swept windows were showing
        """
        urls: List[str] = []
        handles = self.new_handles()
        if not handles:
            return urls

        for handle in handles:
            try:
                self.driver.switch_to_window(handle)
                url = self.driver.current_url
                if url and url != "about:blank":
                    urls.append(url)
                self.driver.close_window()
                logger.info(f"[ORCH] Closed auxiliary window {handle} ({url})")
            except DriverFault:
                raise
            except Exception as e:
                logger.warning(f"[ORCH] Could not sweep window {handle}: {e}")

        self.restore_focus()
        return urls

    def restore_focus(self) -> None:
        handles = self.driver.window_handles
        if self.original in handles:
            self.driver.switch_to_window(self.original)
        elif handles:
            logger.warning("[ORCH] Original window gone; focusing first remaining window")
            self.driver.switch_to_window(handles[0])


class Orchestrator:
    """
    Runs triggers and acquire strategies for one capture at a time.

    Usage:
        orch = Orchestrator()
        outcome = orch.acquire(driver, session_ctx, target_name="Acme LLC",
                               correlation_key="12-3456789")
        if outcome.ok:
            pdf = outcome.accepted.data
    """

    def __init__(
        self,
        triggers: Optional[Sequence[TriggerStrategy]] = None,
        strategies: Optional[Sequence[AcquisitionStrategy]] = None,
        config: Optional[CaptureConfig] = None,
        validator: Optional[Validator] = None,
        locator_table: Optional[LocatorTable] = None
    ):
        self.config = config or get_config()
        self.triggers = list(triggers) if triggers is not None else default_triggers()
        self.strategies = list(strategies) if strategies is not None else default_strategies()
        self.validator = validator or partial(
            validate, rules=DEFAULT_RULES.with_threshold(self.config.accept_threshold)
        )
        self.locator_table = locator_table

    def acquire(
        self,
        driver: Any,
        session_ctx: SessionContext,
        *,
        target_name: str,
        correlation_key: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
        session: Optional[AcquisitionSession] = None
    ) -> Outcome:
        """
        Capture one notice.

        Args:
            driver: AutomationDriver positioned on the confirmation page
            session_ctx: Cookies/headers for direct HTTP fetches
            target_name: Name the notice is for (logging, reports)
            correlation_key: Record key the notice should mention
            cancel: Cancellation token; a new one is used if omitted
            session: Pre-created session (callers that need its summary)

        Returns:
            AcquisitionResult or AcquisitionFailure

        Raises:
            AcquisitionCancelled: If cancelled; cleanup has already run
        """
        cfg = self.config
        token = cancel or CancelToken()
        session = session or AcquisitionSession(target_name, correlation_key)
        if correlation_key and session_ctx.correlation_key != correlation_key:
            session_ctx = session_ctx.with_correlation_key(correlation_key)

        temp_dir = tempfile.mkdtemp(prefix=f"capture_{session.session_id}_", dir=cfg.temp_root)
        tracker: Optional[WindowTracker] = None
        logger.info(f"[ORCH] Session {session.session_id} started for '{target_name}' (dir={temp_dir})")

        try:
            self._redirect_downloads(driver, temp_dir)
            tracker = WindowTracker(driver)
            ctx = StrategyContext(
                driver=driver,
                session=session,
                session_ctx=session_ctx,
                config=cfg,
                cancel=token,
                download_dir=temp_dir,
                locator=ElementLocator(driver, self.locator_table),
                scan_dirs=tuple(cfg.scan_dirs),
                validator=self.validator,
            )

            token.raise_if_cancelled()
            self._prepare(ctx)
            self._run_triggers(ctx, tracker)

            result = self._run_strategies(ctx, tracker)
            if result is not None:
                return result

            session.finalize(SessionOutcome.EXHAUSTED)
            attempts = session.attempts
            logger.warning(f"[ORCH] Session {session.session_id} exhausted after {len(attempts)} attempt(s)")
            return AcquisitionFailure(
                session_id=session.session_id,
                error=SessionExhausted(f"No valid artifact after {len(attempts)} attempt(s)", attempts),
                attempts=attempts,
            )

        except DriverFault as e:
            logger.error(f"[ORCH] Session {session.session_id} aborted: {e}")
            if not session.is_finalized:
                session.finalize(SessionOutcome.ABORTED)
            return AcquisitionFailure(session_id=session.session_id, error=e, attempts=session.attempts)

        except AcquisitionCancelled as e:
            logger.warning(f"[ORCH] Session {session.session_id} cancelled: {e.message}")
            if not session.is_finalized:
                session.finalize(SessionOutcome.CANCELLED)
            raise

        except Exception as e:
            logger.exception(f"[ORCH] Session {session.session_id} aborted by unexpected error: {e}")
            if not session.is_finalized:
                session.finalize(SessionOutcome.ABORTED)
            error = CaptureError(f"Unexpected error: {type(e).__name__}: {e}")
            return AcquisitionFailure(session_id=session.session_id, error=error, attempts=session.attempts)

        finally:
            self._cleanup(tracker, temp_dir)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _redirect_downloads(self, driver: Any, temp_dir: str) -> None:
        try:
            if not driver.set_download_directory(temp_dir):
                logger.info("[ORCH] Driver cannot redirect downloads; relying on scan dirs")
        except DriverFault:
            raise
        except Exception as e:
            logger.warning(f"[ORCH] Download redirect failed: {e}")

    def _prepare(self, ctx: StrategyContext) -> None:
        try:
            isolated = prepare_page(ctx.driver, ctx.locator)
        except (DriverFault, AcquisitionCancelled):
            raise
        except Exception as e:
            logger.warning(f"[ORCH] Page preparation failed: {e}")
            ctx.session.record(AcquisitionAttempt(PAGE_PREP_ID, AttemptOutcome.FAILURE, error_detail=str(e)))
            return
        detail = None if isolated else "target content not found; chrome hidden only"
        ctx.session.record(AcquisitionAttempt(PAGE_PREP_ID, AttemptOutcome.SUCCESS, error_detail=detail))

    def _run_triggers(self, ctx: StrategyContext, tracker: WindowTracker) -> None:
        for trigger in self.triggers:
            ctx.cancel.raise_if_cancelled()
            fired = self._guarded(ctx, trigger.strategy_id, lambda: trigger.fire(ctx))
            if fired:
                ctx.session.record(AcquisitionAttempt(trigger.strategy_id, AttemptOutcome.SUCCESS))
                ctx.cancel.sleep(self.config.trigger_settle_s)
            self._sweep(ctx, tracker)

    def _run_strategies(self, ctx: StrategyContext, tracker: WindowTracker) -> Optional[AcquisitionResult]:
        for strategy in self.strategies:
            ctx.cancel.raise_if_cancelled()
            logger.info(f"[ORCH] Running {strategy.strategy_id}")
            result = self._guarded(ctx, strategy.strategy_id, lambda: self._drain(ctx, strategy))
            self._sweep(ctx, tracker)
            if isinstance(result, AcquisitionResult):
                return result
        return None

    def _drain(self, ctx: StrategyContext, strategy: AcquisitionStrategy) -> Union[AcquisitionResult, bool]:
        """Validate candidates as they arrive; stop at the first valid one."""
        session = ctx.session
        produced = 0
        candidates: Iterable = strategy.candidates(ctx)
        try:
            for candidate in candidates:
                produced += 1
                ctx.cancel.raise_if_cancelled()
                validation = ctx.validator(candidate.data, candidate.inferred_filename, session.correlation_key)

                if validation.is_valid:
                    session.record(AcquisitionAttempt(
                        strategy.strategy_id, AttemptOutcome.SUCCESS, candidate, score=validation.score,
                    ))
                    session.accept(candidate, validation)
                    logger.info(
                        f"[ORCH] Accepted from {strategy.strategy_id}: "
                        f"{candidate.size_bytes} bytes, score={validation.score}"
                    )
                    return AcquisitionResult(
                        session_id=session.session_id,
                        accepted=candidate,
                        validation=validation,
                        attempts=session.attempts,
                    )

                session.record(AcquisitionAttempt(
                    strategy.strategy_id, AttemptOutcome.REJECTED, candidate,
                    error_detail=validation.rejection_reason, score=validation.score,
                ))
                logger.info(f"[ORCH] Rejected candidate from {strategy.strategy_id}: {validation.rejection_reason}")
        finally:
            close = getattr(candidates, "close", None)
            if close is not None:
                close()

        if produced == 0:
            session.record(AcquisitionAttempt(
                strategy.strategy_id, AttemptOutcome.FAILURE, error_detail="no candidates produced",
            ))
        return True

    def _guarded(self, ctx: StrategyContext, strategy_id: str, action: Callable[[], Any]) -> Any:
        """
        Run a trigger or strategy, turning ordinary errors into failed attempts.

        Returns:
            The action's result (True when it returns None), or False on failure
        """
        try:
            result = action()
            return True if result is None else result
        except (DriverFault, AcquisitionCancelled):
            raise
        except StrategyFailure as e:
            detail = e.message
        except Exception as e:
            detail = f"{type(e).__name__}: {e}"
        logger.warning(f"[ORCH] {strategy_id} failed: {detail}")
        ctx.session.record(AcquisitionAttempt(strategy_id, AttemptOutcome.FAILURE, error_detail=detail))
        return False

    def _sweep(self, ctx: StrategyContext, tracker: WindowTracker) -> None:
        try:
            urls = tracker.sweep()
        except (DriverFault, AcquisitionCancelled):
            raise
        except Exception as e:
            detail = f"{type(e).__name__}: {e}"
            logger.warning(f"[ORCH] Window sweep failed: {detail}")
            # An accepted session is already frozen
            if not ctx.session.is_finalized:
                ctx.session.record(AcquisitionAttempt(WINDOW_SWEEP_ID, AttemptOutcome.FAILURE, error_detail=detail))
            return
        for url in urls:
            ctx.add_discovered(url)

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def _cleanup(self, tracker: Optional[WindowTracker], temp_dir: str) -> None:
        if tracker is not None:
            try:
                tracker.sweep()
            except Exception as e:
                logger.warning(f"[ORCH] Window cleanup failed: {e}")
        try:
            shutil.rmtree(temp_dir)
            logger.debug(f"[ORCH] Removed {temp_dir}")
        except OSError as e:
            logger.warning(f"[ORCH] Could not remove {temp_dir}: {e}")
