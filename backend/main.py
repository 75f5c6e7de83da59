"""
Notice Capture Backend: FastAPI Server

This is the service surface of the capture backend:
1. Scores candidate PDFs with the content validator (/api/validate)
2. Probes a notice URL with every download header profile
   (/api/test/pdf-download/run)
3. Exposes stored notices and their sidecar metadata (/artifacts/...)

The capture flow itself (acquisition.CaptureManager) runs in-process next to
the browser automation that owns the live driver.
"""

# Load environment variables FIRST before any other imports
from pathlib import Path
from dotenv import load_dotenv

# Load .env from project root (parent of backend/)
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path, override=True)

import base64
import binascii
import importlib.util
import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pythonjsonlogger import jsonlogger
from typing import Optional
from datetime import datetime
from contextlib import asynccontextmanager
from urllib.parse import urlsplit

from fastapi import FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from capture_config import get_config
from files import (
    SessionContext, DiskArtifactStore, get_artifact_store,
    probe_download_profiles, summarize_probe
)
from validation import DEFAULT_RULES, validate
from schemas import (
    ValidateRequest, ValidateResponse, PdfDownloadTestRequest,
    PdfDownloadTestResponse, HealthResponse
)

SERVICE_NAME = "Notice Capture Backend"
SERVICE_VERSION = "1.0.0"

# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

# Create custom formatter with colors for terminal
class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for different log levels."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'
    BOLD = '\033[1m'

    def format(self, record):
        # Colour a copy; the file handlers format the same record
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{color}{self.BOLD}{record.levelname}{self.RESET}"
        record.msg = f"{color}{record.getMessage()}{self.RESET}"
        record.args = None
        return super().format(record)


def setup_logging(log_dir: Optional[str] = None):
    """
    Setup comprehensive logging for the application.

    Handlers go on the root logger so every module logger
    (acquisition.*, files.*, validation.*) reaches the console and files.
    Calling it again replaces the handlers it installed before.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Clear handlers from a previous call
    for handler in [h for h in root.handlers if getattr(h, "_capture_handler", False)]:
        root.removeHandler(handler)
        handler.close()

    log_path = Path(log_dir or get_config().log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    # Console handler with colors for readability during development
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)  # Keep console less verbose
    console_handler.setFormatter(ColoredFormatter(
        '%(asctime)s | %(levelname)s | [%(name)s] %(message)s',
        datefmt='%H:%M:%S'
    ))

    # Rotating file handler for persistent, structured JSON logs
    # Rotates daily, keeps 7 days of logs.
    file_handler = TimedRotatingFileHandler(
        log_path / "notice_capture.log", when="midnight", interval=1, backupCount=7, encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)  # Full verbosity for file logs
    file_handler.setFormatter(jsonlogger.JsonFormatter(
        '%(asctime)s %(name)s %(levelname)s %(message)s %(lineno)d %(funcName)s',
        rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
    ))

    # Separate, non-JSON error log
    error_handler = logging.FileHandler(log_path / "notice_capture.error.log", mode='a', encoding='utf-8')
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | [%(name)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    for handler in (console_handler, file_handler, error_handler):
        handler._capture_handler = True
        root.addHandler(handler)

    # Connection pool chatter drowns the capture trail
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("selenium").setLevel(logging.INFO)

    return logging.getLogger("notice-capture")

logger = setup_logging()


def selenium_available() -> bool:
    return importlib.util.find_spec("selenium") is not None


def parse_cookie_header(raw: Optional[str]) -> dict:
    """'a=1; b=2' -> {'a': '1', 'b': '2'}; malformed pairs are skipped."""
    cookies = {}
    for part in (raw or "").split(";"):
        name, sep, value = part.strip().partition("=")
        if sep and name:
            cookies[name.strip()] = value.strip()
    return cookies


# ============================================================================
# FASTAPI APPLICATION
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    cfg = get_config()
    logger.info("=" * 60)
    logger.info("  NOTICE CAPTURE BACKEND STARTING")
    logger.info("=" * 60)
    logger.info("REST Endpoints:")
    logger.info("  Health Check:     http://localhost:8000/health")
    logger.info("  Validate:         http://localhost:8000/api/validate")
    logger.info("  Download Probe:   http://localhost:8000/api/test/pdf-download/run")
    logger.info("  Artifacts:        http://localhost:8000/artifacts/stats")
    logger.info(f"Accept threshold: {cfg.accept_threshold}, artifact root: {cfg.artifact_root}")
    logger.info("=" * 60)
    yield
    logger.info("=" * 60)
    logger.info("  NOTICE CAPTURE BACKEND SHUTTING DOWN")
    logger.info("=" * 60)


# Create FastAPI app
app = FastAPI(
    title=SERVICE_NAME,
    description="Validation, download diagnostics and storage for captured EIN notices",
    version=SERVICE_VERSION,
    lifespan=lifespan
)

# CORS middleware for REST endpoints
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    """Service status endpoint."""
    logger.debug("Root endpoint accessed")
    return {
        "service": SERVICE_NAME,
        "status": "running",
        "version": SERVICE_VERSION,
    }


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check with automation and scan-dir status."""
    cfg = get_config()
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        selenium_available=selenium_available(),
        scan_dirs=list(cfg.scan_dirs),
        details={"accept_threshold": cfg.accept_threshold},
    )


@app.get("/config")
async def config():
    """Effective capture configuration."""
    return get_config().to_dict()


# ==============================================================================
# VALIDATION
# ==============================================================================

@app.post("/api/validate", response_model=ValidateResponse)
async def validate_candidate(request: ValidateRequest):
    """
    Score candidate bytes with the content validator.

    The body carries the bytes as base64; the optional filename and
    correlation key feed the filename and correlation rules.
    """
    try:
        data = base64.b64decode(request.content_b64, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("[API] /api/validate rejected: content_b64 is not valid base64")
        raise HTTPException(status_code=400, detail="content_b64 is not valid base64")

    rules = DEFAULT_RULES.with_threshold(get_config().accept_threshold)
    result = validate(data, request.filename, request.correlation_key, rules=rules)
    logger.info(
        f"[API] Validated {len(data)} bytes ({request.filename or 'unnamed'}): "
        f"score={result.score} valid={result.is_valid}"
    )
    return ValidateResponse(**result.to_dict(), size_bytes=len(data))


# ==============================================================================
# DOWNLOAD DIAGNOSTICS
# ==============================================================================

@app.post("/api/test/pdf-download/run", response_model=PdfDownloadTestResponse)
async def run_pdf_download_test(request: PdfDownloadTestRequest):
    """
    Run every download header profile against a notice URL.

    Shows which request shape the server answers with a valid PDF. Nothing
    is stored.
    """
    if not request.url or not request.url.strip():
        raise HTTPException(status_code=400, detail="url is required")

    parts = urlsplit(request.url.strip())
    if parts.scheme != "https" or not parts.netloc:
        raise HTTPException(status_code=400, detail="url must be a valid absolute HTTPS URL")

    cfg = get_config()
    cookies = parse_cookie_header(request.cookie)
    cookies.update(request.cookies)
    ctx = SessionContext(
        base_url=f"{parts.scheme}://{parts.netloc}",
        cookies=cookies,
        headers=dict(request.headers),
        user_agent=request.user_agent,
        referrer=request.referrer,
    )

    rules = DEFAULT_RULES.with_threshold(cfg.accept_threshold)

    def scorer(data: bytes, filename: Optional[str]):
        result = validate(data, filename, rules=rules)
        return result.is_valid, result.score

    logger.info(f"[API] Starting PDF download tests for {request.url}")
    # requests is blocking; keep the event loop free
    results = await run_in_threadpool(
        probe_download_profiles,
        ctx,
        request.url.strip(),
        include_url_variations=request.include_url_variations,
        timeout_s=cfg.http_timeout_s,
        verify_ssl=cfg.verify_ssl,
        scorer=scorer,
    )
    summary = summarize_probe(results)
    logger.info(f"[API] Download tests finished: {summary['summary']}")

    return PdfDownloadTestResponse(
        success=summary["success"],
        summary=summary["summary"],
        success_count=summary["success_count"],
        total_count=summary["total_count"],
        success_rate=summary["success_rate"],
        best_result=summary["best_result"],
        results=[r.to_dict() for r in results],
    )


# ==============================================================================
# ARTIFACT STORAGE
# ==============================================================================

def _store() -> DiskArtifactStore:
    return get_artifact_store(get_config().artifact_root)


@app.get("/artifacts/stats")
async def artifact_stats():
    """Get artifact storage statistics."""
    return _store().stats()


@app.get("/artifacts/{key:path}")
async def get_artifact(key: str, include_content: bool = False):
    """
    Metadata for a stored notice; bytes as base64 when include_content=true.
    """
    store = _store()
    try:
        meta = store.get_metadata(key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if meta is None:
        raise HTTPException(status_code=404, detail=f"Artifact not found: {key}")

    body = {"key": key, "url": store.url_for(key), "metadata": meta}
    if include_content:
        data = store.get(key)
        if data is None:
            raise HTTPException(status_code=404, detail=f"Artifact bytes missing: {key}")
        body["content_b64"] = base64.b64encode(data).decode("ascii")
    return body
