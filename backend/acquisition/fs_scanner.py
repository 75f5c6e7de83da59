"""
Filesystem Scanner: Recover Notices Written to Disk as a Side Effect

Triggers (save shortcuts, download links) make the browser write the PDF
somewhere on disk instead of handing bytes back. This module finds it:

- scan_for_artifact: newest-first search of candidate directories for a
  recent, non-empty file of the expected extension that passes validation
- wait_for_stable_download: bounded poll until a download directory has
  stopped changing
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
import logging
import time

from validation import validate, ValidationResult

from .cancellation import CancelToken
from .errors import StrategyFailure
from .models import CandidateArtifact

logger = logging.getLogger(__name__)

PARTIAL_DOWNLOAD_SUFFIXES = (".crdownload", ".part", ".tmp", ".download")

STRATEGY_ID = "filesystem_scan"

Validator = Callable[..., ValidationResult]


def _matches_extension(path: Path, extension: str) -> bool:
    name = path.name.lower()
    if name.endswith(PARTIAL_DOWNLOAD_SUFFIXES):
        return False
    return name.endswith(extension.lower())


def _recent_files(
    directory: Path,
    extension: str,
    recency_window_s: float,
    now: float
) -> List[Tuple[float, Path]]:
    """(created, path) for recent non-empty matches under directory, newest first."""
    found: List[Tuple[float, Path]] = []
    for path in directory.rglob("*"):
        try:
            if not path.is_file() or not _matches_extension(path, extension):
                continue
            st = path.stat()
        except OSError as e:
            logger.debug(f"[SCAN] Cannot stat {path}: {e}")
            continue

        # Freshly downloaded files are written once; mtime is when the write finished
        created = st.st_mtime
        if st.st_size <= 0:
            continue
        if now - created > recency_window_s:
            continue
        found.append((created, path))

    found.sort(key=lambda item: item[0], reverse=True)
    return found


def scan_for_artifact(
    candidate_dirs: Iterable[str],
    expected_extension: str = ".pdf",
    recency_window_s: float = 300.0,
    cancel: Optional[CancelToken] = None,
    *,
    validator: Validator = validate,
    correlation_key: Optional[str] = None,
    now: Optional[float] = None
) -> Optional[CandidateArtifact]:
    """
    Search candidate directories for a freshly written, valid artifact.

    Args:
        candidate_dirs: Directories to search, in priority order
        expected_extension: File extension to look for (".pdf")
        recency_window_s: Only files written within this many seconds count
        cancel: Optional cancellation token checked between files
        validator: Scoring function (defaults to validation.validate)
        correlation_key: Passed through to the validator
        now: Reference time (epoch seconds); defaults to time.time()

    Returns:
        CandidateArtifact for the first file that validates, or None
    """
    ref_now = time.time() if now is None else now
    seen: Set[Path] = set()

    for raw_dir in candidate_dirs:
        directory = Path(raw_dir).expanduser()
        if not directory.is_dir():
            logger.debug(f"[SCAN] Skipping missing directory: {directory}")
            continue

        try:
            candidates = _recent_files(directory, expected_extension, recency_window_s, ref_now)
        except OSError as e:
            logger.warning(f"[SCAN] Cannot list {directory}: {e}")
            continue

        logger.info(f"[SCAN] {directory}: {len(candidates)} recent {expected_extension} file(s)")

        for _created, path in candidates:
            if cancel is not None:
                cancel.raise_if_cancelled()

            resolved = path.resolve()
            if resolved in seen:
                continue
            seen.add(resolved)

            try:
                data = path.read_bytes()
            except OSError as e:
                logger.warning(f"[SCAN] Cannot read {path}: {e}")
                continue

            result = validator(data, path.name, correlation_key)
            if result.is_valid:
                logger.info(f"[SCAN] Valid artifact: {path} (score={result.score})")
                return CandidateArtifact(
                    data=data,
                    source_strategy_id=STRATEGY_ID,
                    inferred_filename=path.name,
                    source_url=path.as_uri(),
                )
            logger.info(f"[SCAN] Rejected {path.name}: {result.rejection_reason}")

    return None


def _listing(directory: Path, extension: str, baseline: Set[str]) -> Dict[str, int]:
    listing: Dict[str, int] = {}
    if not directory.is_dir():
        return listing
    for path in directory.iterdir():
        if path.name in baseline or not _matches_extension(path, extension):
            continue
        try:
            listing[path.name] = path.stat().st_size
        except OSError:
            continue
    return listing


def _has_partial_downloads(directory: Path) -> bool:
    if not directory.is_dir():
        return False
    return any(p.name.lower().endswith(PARTIAL_DOWNLOAD_SUFFIXES) for p in directory.iterdir())


def wait_for_stable_download(
    directory: str,
    extension: str = ".pdf",
    baseline: Optional[Set[str]] = None,
    cancel: Optional[CancelToken] = None,
    poll_interval_s: float = 0.5,
    stable_polls: int = 3,
    timeout_s: float = 20.0,
    clock: Callable[[], float] = time.monotonic
) -> List[Path]:
    """
    Wait for new downloads in a directory to finish and settle.

    A download counts as settled once `stable_polls` consecutive listings
    (name and size of every new file) are identical and non-empty and no
    partial-download files remain.

    Args:
        directory: Directory the browser downloads into
        extension: File extension to watch
        baseline: File names present before the triggers ran (ignored)
        cancel: Cancellation token; waits return promptly when cancelled
        poll_interval_s: Time between listings
        stable_polls: Consecutive identical listings required
        timeout_s: Overall bound on the wait
        clock: Monotonic clock (tests inject a fake)

    Returns:
        Paths of the new, settled files, newest first

    Raises:
        StrategyFailure: If nothing settles within timeout_s
    """
    token = cancel or CancelToken()
    root = Path(directory)
    known = set(baseline or ())
    deadline = clock() + timeout_s
    previous: Optional[Dict[str, int]] = None
    stable = 0

    while True:
        token.raise_if_cancelled()
        current = _listing(root, extension, known)

        if not current or _has_partial_downloads(root):
            stable = 0
        elif current == previous:
            stable += 1
        else:
            stable = 1
        previous = current

        if current and stable >= stable_polls:
            paths = [root / name for name in current]
            paths.sort(key=lambda p: p.stat().st_mtime, reverse=True)
            logger.info(f"[SCAN] Download settled in {root}: {[p.name for p in paths]}")
            return paths

        if clock() >= deadline:
            raise StrategyFailure(
                f"No settled {extension} download in {root} after {timeout_s}s",
                strategy_id=STRATEGY_ID,
            )

        token.sleep(poll_interval_s)
