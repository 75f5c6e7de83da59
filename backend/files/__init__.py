"""
Files Module: Session-Authenticated Fetching and Notice Storage

Components:
- SessionContext: Captures browser session auth (cookies, headers)
- HttpFetcher: Direct download using session credentials and header profiles
- ArtifactStore: Persists captured notices with provenance and tags

Design Philosophy:
1. Reuse the browser's session: the notice server only answers logged-in requests
2. Never raise for network trouble: fetch results carry ok/error
3. Provenance: every stored notice points back to its capture session
"""

from .session_context import SessionContext
from .http_fetcher import (
    fetch_bytes,
    fetch_with_retry,
    build_headers,
    build_url_variations,
    is_pdf_content_type,
    probe_download_profiles,
    summarize_probe,
    HttpFetchResult,
    ProbeResult,
    PROFILE_ORDER,
)
from .artifact_store import (
    ArtifactStore,
    DiskArtifactStore,
    build_notice_key,
    notice_tags,
    get_artifact_store,
)

__all__ = [
    "SessionContext",
    "fetch_bytes",
    "fetch_with_retry",
    "build_headers",
    "build_url_variations",
    "is_pdf_content_type",
    "probe_download_profiles",
    "summarize_probe",
    "HttpFetchResult",
    "ProbeResult",
    "PROFILE_ORDER",
    "ArtifactStore",
    "DiskArtifactStore",
    "build_notice_key",
    "notice_tags",
    "get_artifact_store",
]
