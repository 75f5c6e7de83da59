"""
Acquire Strategies: Techniques That Produce Candidate Notice Bytes

Each strategy yields zero or more CandidateArtifacts. The orchestrator
validates every candidate as soon as it is yielded and stops pulling from
the generator at the first valid one, so a strategy never runs past the
point where the notice was found.

Default priority order:
1. programmatic_export_full_page    print the prepared page to PDF
2. programmatic_export_content_area print only the isolated notice region
3. embedded_content                 PDFs embedded or linked in the markup
4. filesystem_scan                  files the triggers made the browser save
5. direct_fetch                     GET discovered URLs with session cookies
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Callable, Iterator, List, Optional, Tuple
from urllib.parse import unquote, unquote_to_bytes, urljoin, urlsplit
import base64
import binascii
import logging
import re

from bs4 import BeautifulSoup

from capture_config import CaptureConfig
from files.http_fetcher import PROFILE_ORDER, build_url_variations, fetch_with_retry
from files.session_context import SessionContext
from validation import ValidationResult, validate

from .cancellation import CancelToken
from .errors import AcquisitionCancelled, DriverFault, StrategyFailure
from .fs_scanner import STRATEGY_ID as FILESYSTEM_SCAN_ID, scan_for_artifact, wait_for_stable_download
from .locators import ElementLocator
from .models import AcquisitionSession, CandidateArtifact
from .page_prep import isolate_target_only, prepare_page

logger = logging.getLogger(__name__)

Validator = Callable[..., ValidationResult]

# US Letter, inches; margins zero so the notice keeps its own layout
LETTER_EXPORT_OPTIONS = {
    "paperWidth": 8.5,
    "paperHeight": 11.0,
    "marginTop": 0,
    "marginBottom": 0,
    "marginLeft": 0,
    "marginRight": 0,
    "printBackground": True,
}

INLINE_PDF_DATA_URI = re.compile(r"data:application/pdf(?:;[\w=.-]+)*;base64,[A-Za-z0-9+/=\s]+", re.I)

_READ_BLOB_JS = """
var url = arguments[0], done = arguments[arguments.length - 1];
fetch(url).then(function (r) { return r.blob(); }).then(function (blob) {
    var reader = new FileReader();
    reader.onloadend = function () { done(reader.result); };
    reader.onerror = function () { done(null); };
    reader.readAsDataURL(blob);
}).catch(function () { done(null); });
"""


@dataclass
class StrategyContext:
    """
    Everything a strategy may touch during one session.

    discovered_urls is ordered and de-duplicated; strategies and window
    sweeps append to it via add_discovered().
    """
    driver: Any
    session: AcquisitionSession
    session_ctx: SessionContext
    config: CaptureConfig
    cancel: CancelToken
    download_dir: str
    locator: ElementLocator
    scan_dirs: Tuple[str, ...] = ()
    validator: Validator = validate
    discovered_urls: List[str] = field(default_factory=list)

    def add_discovered(self, url: Optional[str]) -> bool:
        if not url or url in self.discovered_urls:
            return False
        self.discovered_urls.append(url)
        logger.info(f"[STRATEGY] Discovered locator: {url}")
        return True

    @property
    def correlation_key(self) -> Optional[str]:
        return self.session.correlation_key


class AcquisitionStrategy:
    """Base class: subclasses set strategy_id and implement candidates()."""

    strategy_id = "acquisition"

    def candidates(self, ctx: StrategyContext) -> Iterator[CandidateArtifact]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id='{self.strategy_id}')"


def looks_like_pdf_url(url: Optional[str]) -> bool:
    if not url:
        return False
    if url.lower().startswith("data:application/pdf"):
        return True
    path = unquote(urlsplit(url).path).lower()
    return path.endswith(".pdf") or "pdf" in PurePosixPath(path).name


def filename_from_url(url: Optional[str]) -> Optional[str]:
    if not url or url.startswith(("data:", "blob:")):
        return None
    name = PurePosixPath(unquote(urlsplit(url).path)).name
    return name or None


def decode_data_uri(uri: str) -> bytes:
    """
    Decode a data: URI payload.

    Raises:
        ValueError: If the URI is malformed or its base64 is invalid
    """
    if not uri.lower().startswith("data:") or "," not in uri:
        raise ValueError("Not a data URI")
    header, payload = uri[5:].split(",", 1)
    if header.lower().endswith(";base64"):
        try:
            return base64.b64decode(re.sub(r"\s+", "", payload), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 payload: {e}") from e
    return unquote_to_bytes(payload)


# ============================================================================
# Programmatic export
# ============================================================================

class ProgrammaticExportStrategy(AcquisitionStrategy):
    """
    Print the current page to PDF through the browser.

    Variants:
        full_page:    the page as prepared (chrome hidden, notice isolated)
        content_area: re-isolate the notice, hide the rest of body, and
                      honour the page's own @page size
    """

    VARIANTS = ("full_page", "content_area")

    def __init__(self, variant: str = "full_page"):
        if variant not in self.VARIANTS:
            raise ValueError(f"Unknown export variant: {variant}")
        self.variant = variant
        self.strategy_id = f"programmatic_export_{variant}"

    def candidates(self, ctx: StrategyContext) -> Iterator[CandidateArtifact]:
        options = dict(LETTER_EXPORT_OPTIONS)
        if self.variant == "content_area":
            if not prepare_page(ctx.driver, ctx.locator):
                raise StrategyFailure("No target content region to isolate", strategy_id=self.strategy_id)
            isolate_target_only(ctx.driver)
            options["preferCSSPageSize"] = True

        ctx.cancel.raise_if_cancelled()
        data = ctx.driver.print_to_pdf(options)
        if not data:
            raise StrategyFailure("Print to PDF returned no bytes", strategy_id=self.strategy_id)

        logger.info(f"[STRATEGY] {self.strategy_id}: rendered {len(data)} bytes")
        yield CandidateArtifact(
            data=data,
            source_strategy_id=self.strategy_id,
            source_url=ctx.driver.current_url or None,
        )


# ============================================================================
# Embedded content
# ============================================================================

def find_embedded_sources(html: str, base_url: str = "") -> List[str]:
    """
    PDF sources referenced by the markup, in document order, de-duplicated.

    Covers embed/object typed application/pdf, iframe/embed/object sources
    that are .pdf, blob: or data: URLs, anchors pointing at PDFs, and inline
    base64 PDF data URIs anywhere in the markup (scripts included).
    """
    soup = BeautifulSoup(html or "", "html.parser")
    sources: List[str] = []

    def add(raw: Optional[str]) -> None:
        if not raw:
            return
        raw = raw.strip()
        if raw.lower().startswith("javascript:"):
            return
        if raw.lower().startswith(("data:", "blob:")) or not base_url:
            url = raw
        else:
            url = urljoin(base_url, raw)
        if url not in sources:
            sources.append(url)

    for tag in soup.find_all(["embed", "object", "iframe"]):
        src = tag.get("src") or tag.get("data")
        typed_pdf = (tag.get("type") or "").lower() == "application/pdf"
        if typed_pdf or looks_like_pdf_url(src) or (src or "").startswith(("blob:", "data:")):
            add(src)

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if looks_like_pdf_url(href) or (anchor.get("type") or "").lower() == "application/pdf":
            add(href)

    for match in INLINE_PDF_DATA_URI.finditer(html or ""):
        add(match.group(0))

    return sources


class EmbeddedContentStrategy(AcquisitionStrategy):
    """Extract PDFs embedded in, or linked from, the confirmation page."""

    strategy_id = "embedded_content"

    def candidates(self, ctx: StrategyContext) -> Iterator[CandidateArtifact]:
        base_url = ctx.driver.current_url or ""
        sources = find_embedded_sources(ctx.driver.page_source, base_url)
        logger.info(f"[STRATEGY] {self.strategy_id}: {len(sources)} source(s) in markup")

        for source in sources:
            ctx.cancel.raise_if_cancelled()
            try:
                candidate = self._read_source(ctx, source)
            except (DriverFault, AcquisitionCancelled):
                raise
            except Exception as e:
                logger.warning(f"[STRATEGY] {self.strategy_id}: source failed {source[:80]}: {e}")
                continue
            if candidate is not None:
                yield candidate

    def _read_source(self, ctx: StrategyContext, source: str) -> Optional[CandidateArtifact]:
        lowered = source.lower()
        if lowered.startswith("data:"):
            data = decode_data_uri(source)
            return CandidateArtifact(data=data, source_strategy_id=self.strategy_id) if data else None

        if lowered.startswith("blob:"):
            data_uri = ctx.driver.execute_async_script(_READ_BLOB_JS, source)
            if not data_uri:
                logger.info(f"[STRATEGY] {self.strategy_id}: blob unreadable {source}")
                return None
            data = decode_data_uri(data_uri)
            return CandidateArtifact(data=data, source_strategy_id=self.strategy_id, source_url=source)

        if lowered.startswith(("http://", "https://")):
            ctx.add_discovered(source)
            cfg = ctx.config
            res = fetch_with_retry(
                ctx.session_ctx, source,
                timeout_s=cfg.http_timeout_s,
                retries=cfg.fetch_retries,
                backoff_s=cfg.backoff_s,
                verify_ssl=cfg.verify_ssl,
                sleep=ctx.cancel.sleep,
            )
            if not res.ok or not res.content:
                logger.info(f"[STRATEGY] {self.strategy_id}: fetch failed {source}: {res.error}")
                return None
            return CandidateArtifact(
                data=res.content,
                source_strategy_id=self.strategy_id,
                inferred_filename=res.filename_from_header or filename_from_url(source),
                source_url=res.final_url or source,
            )

        logger.debug(f"[STRATEGY] {self.strategy_id}: unsupported scheme {source[:40]}")
        return None


# ============================================================================
# Filesystem scan
# ============================================================================

class FilesystemScanStrategy(AcquisitionStrategy):
    """Recover a notice the triggers caused the browser to write to disk."""

    strategy_id = FILESYSTEM_SCAN_ID

    def candidates(self, ctx: StrategyContext) -> Iterator[CandidateArtifact]:
        cfg = ctx.config
        try:
            wait_for_stable_download(
                ctx.download_dir,
                extension=cfg.expected_extension,
                cancel=ctx.cancel,
                poll_interval_s=cfg.poll_interval_s,
                stable_polls=cfg.stable_polls,
                timeout_s=cfg.download_timeout_s,
            )
        except StrategyFailure as e:
            # Triggers may have saved elsewhere; the configured dirs still get scanned
            logger.info(f"[STRATEGY] {self.strategy_id}: {e.message}")

        dirs = [ctx.download_dir] + [d for d in ctx.scan_dirs if d != ctx.download_dir]
        found = scan_for_artifact(
            dirs,
            expected_extension=cfg.expected_extension,
            recency_window_s=cfg.recency_window_s,
            cancel=ctx.cancel,
            validator=ctx.validator,
            correlation_key=ctx.correlation_key,
        )
        if found is not None:
            yield found


# ============================================================================
# Direct fetch
# ============================================================================

class DirectFetchStrategy(AcquisitionStrategy):
    """
    GET each discovered URL with the browser's cookies.

    Header profiles are tried in PROFILE_ORDER per URL. Responses with a
    non-PDF content type (login pages, JSON errors) are dropped without
    becoming candidates.
    """

    strategy_id = "direct_fetch"

    def __init__(self, profiles: Tuple[str, ...] = PROFILE_ORDER):
        self.profiles = tuple(profiles)

    def _targets(self, ctx: StrategyContext) -> List[str]:
        urls = [u for u in ctx.discovered_urls if u.lower().startswith(("http://", "https://"))]
        current = ctx.driver.current_url
        if looks_like_pdf_url(current) and current not in urls and current.lower().startswith("http"):
            urls.append(current)
        if ctx.config.url_variations:
            expanded: List[str] = []
            for url in urls:
                for variant in build_url_variations(url):
                    if variant not in expanded:
                        expanded.append(variant)
            urls = expanded
        return urls

    def candidates(self, ctx: StrategyContext) -> Iterator[CandidateArtifact]:
        targets = self._targets(ctx)
        if not targets:
            raise StrategyFailure("No discovered URLs to fetch", strategy_id=self.strategy_id)

        cfg = ctx.config
        for url in targets:
            for profile in self.profiles:
                ctx.cancel.raise_if_cancelled()
                res = fetch_with_retry(
                    ctx.session_ctx, url,
                    profile=profile,
                    timeout_s=cfg.http_timeout_s,
                    retries=cfg.fetch_retries,
                    backoff_s=cfg.backoff_s,
                    verify_ssl=cfg.verify_ssl,
                    sleep=ctx.cancel.sleep,
                )
                if not res.ok or not res.content:
                    logger.info(f"[STRATEGY] {self.strategy_id} [{profile}] {url}: {res.error or 'empty body'}")
                    continue
                if not res.is_pdf_content:
                    logger.info(f"[STRATEGY] {self.strategy_id} [{profile}] {url}: non-PDF {res.content_type}")
                    continue

                yield CandidateArtifact(
                    data=res.content,
                    source_strategy_id=self.strategy_id,
                    inferred_filename=res.filename_from_header or filename_from_url(url),
                    source_url=res.final_url or url,
                )


def default_strategies() -> List[AcquisitionStrategy]:
    """Acquire strategies in priority order."""
    return [
        ProgrammaticExportStrategy("full_page"),
        ProgrammaticExportStrategy("content_area"),
        EmbeddedContentStrategy(),
        FilesystemScanStrategy(),
        DirectFetchStrategy(),
    ]
