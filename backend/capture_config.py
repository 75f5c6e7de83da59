"""
Capture Configuration: Environment-Driven Settings

All timing, threshold and location knobs are read from CAPTURE_* environment
variables (a .env file at the project root is loaded first). The poll and
sleep values were tuned against the IRS confirmation flow; adjust them per
environment rather than in code.

Variables:
    CAPTURE_ACCEPT_THRESHOLD     Validator acceptance threshold (60)
    CAPTURE_SCAN_DIRS            os.pathsep-separated candidate download dirs
    CAPTURE_EXTENSION            Expected artifact extension (.pdf)
    CAPTURE_RECENCY_WINDOW_S     How fresh a scanned file must be (300)
    CAPTURE_POLL_INTERVAL_S      Download-dir poll interval (0.5)
    CAPTURE_STABLE_POLLS         Identical listings required (3)
    CAPTURE_DOWNLOAD_TIMEOUT_S   Bound on the download wait (20)
    CAPTURE_TRIGGER_SETTLE_S     Pause after each trigger (1.0)
    CAPTURE_HTTP_TIMEOUT_S       Direct-fetch timeout (30)
    CAPTURE_FETCH_RETRIES        Retries on connection errors (2)
    CAPTURE_BACKOFF_S            Base backoff between retries (1.0)
    CAPTURE_URL_VARIATIONS       Also try URL variations in direct fetch (0)
    CAPTURE_TEMP_ROOT            Parent dir of per-session temp dirs
    CAPTURE_ARTIFACT_ROOT        Root of the disk artifact store (data/artifacts)
    CAPTURE_VERIFY_SSL           Verify TLS certificates (1)
    CAPTURE_LOG_DIR              Directory for the JSON and error log files (logs)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple
import logging
import os
import tempfile

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[CONFIG] Invalid float for {name}={raw!r}, using {default}")
        return default


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[CONFIG] Invalid int for {name}={raw!r}, using {default}")
        return default


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUTHY


def default_scan_dirs() -> Tuple[str, ...]:
    """Browser download folder plus the system temp dir."""
    return (
        str(Path.home() / "Downloads"),
        tempfile.gettempdir(),
    )


@dataclass(frozen=True)
class CaptureConfig:
    """Immutable capture settings; build with from_env() or directly in tests."""
    accept_threshold: int = 60
    scan_dirs: Tuple[str, ...] = field(default_factory=default_scan_dirs)
    expected_extension: str = ".pdf"
    recency_window_s: float = 300.0

    poll_interval_s: float = 0.5
    stable_polls: int = 3
    download_timeout_s: float = 20.0
    trigger_settle_s: float = 1.0

    http_timeout_s: float = 30.0
    fetch_retries: int = 2
    backoff_s: float = 1.0
    url_variations: bool = False
    verify_ssl: bool = True

    temp_root: Optional[str] = None
    artifact_root: str = "data/artifacts"
    log_dir: str = "logs"

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "CaptureConfig":
        """
        Build configuration from the environment.

        Args:
            env: Mapping to read instead of os.environ (tests pass a dict)

        Returns:
            CaptureConfig populated from CAPTURE_* variables
        """
        if env is None:
            load_dotenv()
            env = os.environ

        raw_dirs = env.get("CAPTURE_SCAN_DIRS", "")
        scan_dirs = tuple(d for d in raw_dirs.split(os.pathsep) if d.strip()) or default_scan_dirs()

        return CaptureConfig(
            accept_threshold=_get_int(env, "CAPTURE_ACCEPT_THRESHOLD", 60),
            scan_dirs=scan_dirs,
            expected_extension=env.get("CAPTURE_EXTENSION", ".pdf") or ".pdf",
            recency_window_s=_get_float(env, "CAPTURE_RECENCY_WINDOW_S", 300.0),
            poll_interval_s=_get_float(env, "CAPTURE_POLL_INTERVAL_S", 0.5),
            stable_polls=_get_int(env, "CAPTURE_STABLE_POLLS", 3),
            download_timeout_s=_get_float(env, "CAPTURE_DOWNLOAD_TIMEOUT_S", 20.0),
            trigger_settle_s=_get_float(env, "CAPTURE_TRIGGER_SETTLE_S", 1.0),
            http_timeout_s=_get_float(env, "CAPTURE_HTTP_TIMEOUT_S", 30.0),
            fetch_retries=_get_int(env, "CAPTURE_FETCH_RETRIES", 2),
            backoff_s=_get_float(env, "CAPTURE_BACKOFF_S", 1.0),
            url_variations=_get_bool(env, "CAPTURE_URL_VARIATIONS", False),
            verify_ssl=_get_bool(env, "CAPTURE_VERIFY_SSL", True),
            temp_root=env.get("CAPTURE_TEMP_ROOT") or None,
            artifact_root=env.get("CAPTURE_ARTIFACT_ROOT", "data/artifacts") or "data/artifacts",
            log_dir=env.get("CAPTURE_LOG_DIR", "logs") or "logs",
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "accept_threshold": self.accept_threshold,
            "scan_dirs": list(self.scan_dirs),
            "expected_extension": self.expected_extension,
            "recency_window_s": self.recency_window_s,
            "poll_interval_s": self.poll_interval_s,
            "stable_polls": self.stable_polls,
            "download_timeout_s": self.download_timeout_s,
            "trigger_settle_s": self.trigger_settle_s,
            "http_timeout_s": self.http_timeout_s,
            "fetch_retries": self.fetch_retries,
            "backoff_s": self.backoff_s,
            "url_variations": self.url_variations,
            "verify_ssl": self.verify_ssl,
            "temp_root": self.temp_root,
            "artifact_root": self.artifact_root,
            "log_dir": self.log_dir,
        }


_config: Optional[CaptureConfig] = None


def get_config() -> CaptureConfig:
    """Get or create the process-wide configuration."""
    global _config
    if _config is None:
        _config = CaptureConfig.from_env()
    return _config
