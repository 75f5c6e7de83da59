"""
Acquisition Module: Getting the Notice Out of the Browser

Components:
- Orchestrator: Runs page preparation, triggers and acquire strategies for a session
- Strategies: Programmatic export, embedded content, filesystem scan, direct fetch
- Triggers: Declarative clicks, shortcuts and page export calls (fire-and-forget)
- Filesystem Scanner: Finds freshly saved notices on disk
- CaptureManager: Orchestrates, stores the accepted notice, writes a session report

Design Philosophy:
1. Try everything in priority order, stop at the first validated candidate
2. Only a dead browser aborts a session; every other failure is one attempt
3. Clean up temp dirs and stray windows on every exit path
"""

from .errors import (
    CaptureError,
    StrategyFailure,
    ValidationRejected,
    SessionExhausted,
    DriverFault,
    AcquisitionCancelled,
    SessionFinalized,
)
from .cancellation import CancelToken
from .models import (
    AttemptOutcome,
    SessionOutcome,
    CandidateArtifact,
    AcquisitionAttempt,
    AcquisitionSession,
    AcquisitionResult,
    AcquisitionFailure,
)
from .fs_scanner import scan_for_artifact, wait_for_stable_download
from .locators import Locator, ElementLocator, DEFAULT_LOCATORS
from .driver import AutomationDriver, SeleniumDriver, make_chrome_driver
from .page_prep import prepare_page, isolate_target_only
from .strategies import (
    StrategyContext,
    AcquisitionStrategy,
    ProgrammaticExportStrategy,
    EmbeddedContentStrategy,
    FilesystemScanStrategy,
    DirectFetchStrategy,
    default_strategies,
)
from .triggers import TriggerKind, TriggerSpec, TriggerStrategy, DEFAULT_TRIGGERS, default_triggers
from .orchestrator import Orchestrator, WindowTracker
from .capture_manager import CaptureManager, CaptureRequest, CaptureOutcome, get_capture_manager

__all__ = [
    "CaptureError",
    "StrategyFailure",
    "ValidationRejected",
    "SessionExhausted",
    "DriverFault",
    "AcquisitionCancelled",
    "SessionFinalized",
    "CancelToken",
    "AttemptOutcome",
    "SessionOutcome",
    "CandidateArtifact",
    "AcquisitionAttempt",
    "AcquisitionSession",
    "AcquisitionResult",
    "AcquisitionFailure",
    "scan_for_artifact",
    "wait_for_stable_download",
    "Locator",
    "ElementLocator",
    "DEFAULT_LOCATORS",
    "AutomationDriver",
    "SeleniumDriver",
    "make_chrome_driver",
    "prepare_page",
    "isolate_target_only",
    "StrategyContext",
    "AcquisitionStrategy",
    "ProgrammaticExportStrategy",
    "EmbeddedContentStrategy",
    "FilesystemScanStrategy",
    "DirectFetchStrategy",
    "default_strategies",
    "TriggerKind",
    "TriggerSpec",
    "TriggerStrategy",
    "DEFAULT_TRIGGERS",
    "default_triggers",
    "Orchestrator",
    "WindowTracker",
    "CaptureManager",
    "CaptureRequest",
    "CaptureOutcome",
    "get_capture_manager",
]
