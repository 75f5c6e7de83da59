"""
Session Context: Browser-Captured Authentication State

This module captures the authentication context of the live automation
session so that notices can be fetched over plain HTTP with the same
cookies the browser holds.

Captured:
- Session cookies (auth tokens, load-balancer affinity)
- Request headers worth replaying (User-Agent, Referer)
- Base URL of the site

SECURITY NOTES:
- Do NOT persist this; it lives for one capture session
- to_dict() redacts cookie values so it is safe to log
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionContext:
    """
    Short-lived auth context taken from the live browser session.

    Attributes:
        base_url: Scheme and host of the site (e.g., "https://sa.www4.irs.gov")
        cookies: Dictionary of session cookies
        headers: Dictionary of request headers to replay
        user_agent: Browser User-Agent string
        referrer: Page the notice was reached from
        correlation_key: Record key the notice should mention (e.g. the EIN)
    """
    base_url: str
    cookies: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    correlation_key: Optional[str] = None

    def cookie_header(self) -> str:
        """
        Format cookies as a Cookie header string.

        Returns:
            String formatted as "key1=value1; key2=value2"
        """
        return "; ".join([f"{k}={v}" for k, v in self.cookies.items() if v is not None])

    def with_correlation_key(self, key: Optional[str]) -> "SessionContext":
        return replace(self, correlation_key=key)

    def with_headers(self, headers: Dict[str, str]) -> "SessionContext":
        merged = dict(self.headers)
        merged.update(headers)
        return replace(self, headers=merged)

    @staticmethod
    def from_driver(driver: Any, correlation_key: Optional[str] = None) -> "SessionContext":
        """
        Build a SessionContext from a live AutomationDriver.

        Args:
            driver: AutomationDriver positioned on the confirmation page
            correlation_key: Optional record key for validation

        Returns:
            SessionContext carrying the browser's cookies and identity
        """
        current_url = driver.current_url or ""
        parts = urlsplit(current_url)
        base_url = f"{parts.scheme}://{parts.netloc}" if parts.scheme and parts.netloc else ""

        raw_cookies: List[Dict[str, Any]] = driver.get_cookies() or []
        cookies = {
            str(c["name"]): str(c.get("value", ""))
            for c in raw_cookies
            if c.get("name")
        }

        ctx = SessionContext(
            base_url=base_url,
            cookies=cookies,
            user_agent=driver.get_user_agent(),
            referrer=current_url or None,
            correlation_key=correlation_key,
        )
        logger.info(f"[SESSION] Captured from driver: {ctx}")
        return ctx

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging; cookie values are redacted."""
        return {
            "base_url": self.base_url,
            "cookies": {k: "***" for k in self.cookies},
            "headers": sorted(self.headers.keys()),
            "user_agent": self.user_agent,
            "referrer": self.referrer,
            "correlation_key": self.correlation_key,
        }

    def is_valid(self) -> bool:
        """
        Check if this session context has minimum required data.

        Returns:
            True if base_url and at least one cookie are present
        """
        return bool(self.base_url) and bool(self.cookies)

    def __repr__(self) -> str:
        return (
            f"SessionContext(base_url='{self.base_url}', "
            f"cookies={len(self.cookies)}, headers={len(self.headers)}, "
            f"correlation_key={self.correlation_key})"
        )
