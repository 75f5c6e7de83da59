"""
HTTP Fetcher: Direct Download Using Session Credentials

This module downloads notices over plain HTTP with the cookies and headers
captured from the live browser session.

Header profiles replay the request shapes that have worked against the
notice server in the past:
- session: only what the browser session carries
- browser: a desktop-browser navigation request
- same_origin: Referer + Sec-Fetch-* headers of an in-site navigation
- pdf_accept: an explicit request for PDF content

fetch_bytes() never raises for network problems; it returns an
HttpFetchResult with ok=False and an error message instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit
import logging
import re
import time

import requests
from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt, wait_exponential

from .session_context import SessionContext

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

PDF_CONTENT_TYPES = (
    "application/pdf",
    "application/x-pdf",
    "application/octet-stream",
    "binary/octet-stream",
    "application/force-download",
    "application/x-download",
    "application/download",
)

# Statuses worth another try; 0 means the request never completed
RETRYABLE_STATUSES = (0, 429, 502, 503, 504)

HEADER_PROFILES: Mapping[str, Mapping[str, str]] = MappingProxyType({
    "session": MappingProxyType({}),
    "browser": MappingProxyType({
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
        "Accept-Encoding": "gzip, deflate",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
    }),
    "same_origin": MappingProxyType({
        "X-Requested-With": "XMLHttpRequest",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "same-origin",
        "Sec-Fetch-User": "?1",
    }),
    "pdf_accept": MappingProxyType({
        "Accept": "application/pdf, application/octet-stream, */*",
    }),
})

PROFILE_ORDER: Tuple[str, ...] = ("session", "browser", "same_origin", "pdf_accept")


@dataclass(frozen=True)
class HttpFetchResult:
    """
    Result of an HTTP fetch operation.

    Attributes:
        ok: True if the request succeeded (2xx status)
        status: HTTP status code (0 if the request never completed)
        headers: Response headers
        content: Response body as bytes
        error: Error message if request failed
        final_url: Final URL after redirects
    """
    ok: bool
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    content: bytes = b""
    error: Optional[str] = None
    final_url: Optional[str] = None

    @property
    def content_type(self) -> Optional[str]:
        """Get the Content-Type header if present."""
        return self.headers.get("Content-Type") or self.headers.get("content-type")

    @property
    def content_length(self) -> int:
        """Get the content length."""
        return len(self.content)

    @property
    def filename_from_header(self) -> Optional[str]:
        """
        Extract filename from Content-Disposition header if present.

        Examples:
            Content-Disposition: attachment; filename="CP575_1755102640378.pdf"
            Content-Disposition: attachment; filename*=UTF-8''CP575%20notice.pdf
        """
        cd = self.headers.get("Content-Disposition") or self.headers.get("content-disposition")
        if not cd:
            return None

        match = re.search(r'filename[*]?=(?:UTF-8\'\')?["\']?([^"\';\s]+)["\']?', cd, re.IGNORECASE)
        if match:
            return match.group(1)
        return None

    @property
    def is_pdf_content(self) -> bool:
        return is_pdf_content_type(self.content_type)


def is_pdf_content_type(content_type: Optional[str]) -> bool:
    """
    True if a Content-Type could carry a PDF.

    A missing header is accepted; the validator's signature check decides.
    """
    if not content_type:
        return True
    media = content_type.split(";", 1)[0].strip().lower()
    return media in PDF_CONTENT_TYPES


def build_headers(ctx: SessionContext, profile: str = "session") -> Dict[str, str]:
    """
    Request headers for a profile, layered over the session's own headers.

    Args:
        ctx: SessionContext with captured headers
        profile: One of HEADER_PROFILES

    Returns:
        Header dictionary (without Cookie; fetch_bytes adds it)
    """
    hdrs = dict(ctx.headers or {})
    hdrs.update(HEADER_PROFILES.get(profile, {}))

    lower = {k.lower() for k in hdrs}
    if "user-agent" not in lower:
        hdrs["User-Agent"] = ctx.user_agent or DEFAULT_USER_AGENT

    if profile == "same_origin" and "referer" not in lower:
        referrer = ctx.referrer or (f"{ctx.base_url.rstrip('/')}/" if ctx.base_url else None)
        if referrer:
            hdrs["Referer"] = referrer
    return hdrs


def build_url_variations(url: str) -> List[str]:
    """
    The URL plus download-forcing variants the notice server has honoured.

    Examples:
        .../CP575_1.pdf -> .../CP575_1.pdf?download=true, .../CP575_1.PDF
    """
    parts = urlsplit(url)
    variations = [url]

    query = f"{parts.query}&download=true" if parts.query else "download=true"
    variations.append(urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment)))

    if parts.path.lower().endswith(".pdf"):
        upper = parts.path[:-4] + ".PDF"
        if upper != parts.path:
            variations.append(urlunsplit((parts.scheme, parts.netloc, upper, parts.query, parts.fragment)))

    seen = set()
    return [v for v in variations if not (v in seen or seen.add(v))]


def fetch_bytes(
    ctx: SessionContext,
    url: str,
    timeout_s: float = 30,
    allow_redirects: bool = True,
    verify_ssl: bool = True,
    headers: Optional[Dict[str, str]] = None
) -> HttpFetchResult:
    """
    HTTP GET using session cookies/headers captured from the live browser session.

    Args:
        ctx: SessionContext with cookies and headers from browser
        url: URL to fetch
        timeout_s: Request timeout in seconds
        allow_redirects: Whether to follow redirects
        verify_ssl: Whether to verify SSL certificates
        headers: Request headers (defaults to the "session" profile)

    Returns:
        HttpFetchResult with response data or error information
    """
    hdrs = dict(headers) if headers is not None else build_headers(ctx, "session")

    # Pass cookies both ways: requests cookie-jar + explicit header
    # This improves compatibility with odd server setups
    cookies = ctx.cookies or {}
    if cookies and "cookie" not in {k.lower() for k in hdrs.keys()}:
        hdrs["Cookie"] = ctx.cookie_header()

    logger.info(f"[HTTP] Fetching: {url}")
    logger.debug(f"[HTTP] Cookies: {len(cookies)} items")
    logger.debug(f"[HTTP] Headers: {list(hdrs.keys())}")

    try:
        r = requests.get(
            url,
            headers=hdrs,
            cookies=cookies,
            timeout=timeout_s,
            allow_redirects=allow_redirects,
            verify=verify_ssl,
            stream=False
        )

        result = HttpFetchResult(
            ok=bool(r.ok),
            status=int(r.status_code),
            headers={k: v for k, v in r.headers.items()},
            content=r.content or b"",
            error=None if r.ok else f"HTTP {r.status_code}",
            final_url=r.url if r.url != url else None
        )

        if result.ok:
            logger.info(f"[HTTP] Success: {result.status}, {result.content_length} bytes, {result.content_type}")
        else:
            logger.warning(f"[HTTP] Failed: {result.status} - {url}")

        return result

    except requests.exceptions.Timeout:
        logger.error(f"[HTTP] Timeout after {timeout_s}s: {url}")
        return HttpFetchResult(ok=False, status=0, error=f"Timeout after {timeout_s}s")
    except requests.exceptions.SSLError as e:
        logger.error(f"[HTTP] SSL Error: {e}")
        return HttpFetchResult(ok=False, status=0, error=f"SSL Error: {e}")
    except requests.exceptions.ConnectionError as e:
        logger.error(f"[HTTP] Connection Error: {e}")
        return HttpFetchResult(ok=False, status=0, error=f"Connection Error: {e}")
    except requests.exceptions.RequestException as e:
        logger.error(f"[HTTP] Request error: {e}")
        return HttpFetchResult(ok=False, status=0, error=str(e))


def fetch_with_retry(
    ctx: SessionContext,
    url: str,
    *,
    profile: str = "session",
    timeout_s: float = 30,
    retries: int = 2,
    backoff_s: float = 1.0,
    verify_ssl: bool = True,
    sleep: Callable[[float], None] = time.sleep
) -> HttpFetchResult:
    """
    fetch_bytes with exponential backoff on transient failures.

    Only connection-level failures and RETRYABLE_STATUSES are retried; a
    403 or 404 is final.

    Args:
        ctx: SessionContext with cookies
        url: URL to fetch
        profile: Header profile name
        timeout_s: Per-request timeout
        retries: Extra attempts after the first
        backoff_s: First delay; doubles on each retry
        verify_ssl: Whether to verify SSL certificates
        sleep: Delay function (a CancelToken.sleep during capture)

    Returns:
        The last HttpFetchResult
    """
    headers = build_headers(ctx, profile)

    def log_retry(retry_state: RetryCallState) -> None:
        last = retry_state.outcome.result()
        logger.info(
            f"[HTTP] Retry {retry_state.attempt_number}/{retries} in "
            f"{retry_state.next_action.sleep:.1f}s ({last.error})"
        )

    retrying = Retrying(
        stop=stop_after_attempt(retries + 1),
        wait=wait_exponential(multiplier=backoff_s),
        retry=retry_if_result(lambda r: not r.ok and r.status in RETRYABLE_STATUSES),
        sleep=sleep,
        before_sleep=log_retry,
        retry_error_callback=lambda retry_state: retry_state.outcome.result(),
    )
    return retrying(fetch_bytes, ctx, url, timeout_s=timeout_s, verify_ssl=verify_ssl, headers=headers)


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one header profile / URL combination in a probe run."""
    method: str
    url: str
    success: bool
    details: str
    file_size: int = 0
    content_type: Optional[str] = None
    score: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "method": self.method,
            "url": self.url,
            "success": self.success,
            "details": self.details,
            "file_size": self.file_size,
            "content_type": self.content_type,
            "score": self.score,
        }


def probe_download_profiles(
    ctx: SessionContext,
    url: str,
    *,
    include_url_variations: bool = False,
    timeout_s: float = 30,
    verify_ssl: bool = True,
    scorer: Optional[Callable[[bytes, Optional[str]], Tuple[bool, int]]] = None
) -> List[ProbeResult]:
    """
    Try every header profile (and optionally URL variation) against a URL.

    Diagnostic helper: shows which request shape the server answers with a
    PDF. Nothing is retried or stored.

    Args:
        ctx: SessionContext with cookies/headers
        url: Notice URL to probe
        include_url_variations: Also probe build_url_variations(url)
        timeout_s: Per-request timeout
        verify_ssl: Whether to verify SSL certificates
        scorer: Optional (bytes, filename) -> (is_valid, score) callback

    Returns:
        One ProbeResult per profile/URL combination, in probe order
    """
    urls = build_url_variations(url) if include_url_variations else [url]
    results: List[ProbeResult] = []

    for target in urls:
        for profile in PROFILE_ORDER:
            label = profile if target == url else f"{profile} @ variation"
            res = fetch_bytes(ctx, target, timeout_s=timeout_s, verify_ssl=verify_ssl,
                              headers=build_headers(ctx, profile))
            if not res.ok:
                results.append(ProbeResult(label, target, False, res.error or "HTTP fetch failed"))
                continue
            if not res.content:
                results.append(ProbeResult(label, target, False, "Empty body", 0, res.content_type))
                continue
            if not res.is_pdf_content:
                results.append(ProbeResult(
                    label, target, False, f"Non-PDF content type: {res.content_type}",
                    res.content_length, res.content_type,
                ))
                continue

            score = None
            success = True
            details = f"Downloaded {res.content_length} bytes"
            if scorer is not None:
                success, score = scorer(res.content, res.filename_from_header)
                if not success:
                    details = f"Downloaded {res.content_length} bytes but failed validation (score {score})"
            results.append(ProbeResult(label, target, success, details,
                                       res.content_length, res.content_type, score))

    return results


def summarize_probe(results: List[ProbeResult]) -> Dict[str, object]:
    """Success count, rate and best (largest successful) result."""
    total = len(results)
    successes = [r for r in results if r.success]
    rate = (len(successes) / total * 100) if total else 0.0
    best = max(successes, key=lambda r: r.file_size) if successes else None
    return {
        "success": bool(successes),
        "success_count": len(successes),
        "total_count": total,
        "success_rate": round(rate, 1),
        "summary": f"{len(successes)}/{total} strategies succeeded ({rate:.1f}%)",
        "best_result": best.to_dict() if best else None,
    }
