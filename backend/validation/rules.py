"""
Scoring Rules: Weights and Dictionaries for CP 575 Notice Validation

Every number the validator uses lives here so it can be tuned without
touching the scoring code. The defaults were picked from genuine notices
pulled out of live sessions; treat them as a starting point.

Dictionaries:
- CRITICAL_PHRASES: strongly diagnostic wording of the notice itself
- SUPPORTING_PHRASES: corroborating wording (capped contribution)
- NEGATIVE_PHRASES: evidence the blob is a captured web page
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Tuple
import re


PDF_MAGIC = b"%PDF-"

CRITICAL_PHRASES: Tuple[str, ...] = (
    "internal revenue service",
    "employer identification number",
    "we assigned you an employer identification number",
    "cp 575",
    "cp575",
    "department of the treasury",
)

SUPPORTING_PHRASES: Tuple[str, ...] = (
    "irs",
    "ein",
    "form ss-4",
    "keep this notice",
    "taxpayer",
    "responsible party",
    "tax period",
    "notice date",
    "cincinnati",
    "ogden",
    "your ein",
)

NEGATIVE_PHRASES: Tuple[str, ...] = (
    "<html",
    "<!doctype",
    "<div",
    "<script",
    "javascript",
    "function(",
    "stylesheet",
    "href=",
    "skip to main content",
    "sign in",
    "log out",
    "navigation",
    "cookie policy",
)

# NOTICE_1753375123337.pdf, CP575_1755102640378.pdf, EIN_Letter-123456.pdf
EXACT_FILENAME_PATTERN = re.compile(
    r"^(cp575|notice|ein[_-]?letter)[_-]\d{6,}\.pdf$", re.IGNORECASE
)

FILENAME_TOKENS: Tuple[str, ...] = ("cp575", "notice", "ein", "irs")

GENERIC_FILENAME_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"download", re.IGNORECASE),
    re.compile(r"document", re.IGNORECASE),
    re.compile(r"untitled", re.IGNORECASE),
    re.compile(r"print", re.IGNORECASE),
    re.compile(r"screenshot", re.IGNORECASE),
    re.compile(r"^page", re.IGNORECASE),
    re.compile(r"^file", re.IGNORECASE),
    re.compile(r"\(\d+\)"),
)


@dataclass(frozen=True)
class ScoringRules:
    """
    Immutable scoring configuration.

    Attributes:
        acceptance_threshold: Minimum total score for a valid notice
        narrow_size_range: Byte range genuine notices fall in
        wide_size_range: Byte range still plausible for a notice
        gross_size_limit: Above this, the blob is almost surely a page capture
        critical_weight / supporting_weight / negative_weight: Per-match weights
        supporting_cap: Ceiling on the summed supporting contribution
        negative_cap: Floor on the summed markup penalty
    """
    acceptance_threshold: int = 60

    narrow_size_range: Tuple[int, int] = (10_000, 60_000)
    wide_size_range: Tuple[int, int] = (2_000, 250_000)
    gross_size_limit: int = 1_000_000
    narrow_size_bonus: int = 20
    wide_size_bonus: int = 10
    oversize_penalty: int = -40

    critical_phrases: Tuple[str, ...] = CRITICAL_PHRASES
    supporting_phrases: Tuple[str, ...] = SUPPORTING_PHRASES
    negative_phrases: Tuple[str, ...] = NEGATIVE_PHRASES
    critical_weight: int = 30
    supporting_weight: int = 8
    supporting_cap: int = 24
    negative_weight: int = -15
    negative_cap: int = -30

    exact_filename_pattern: re.Pattern = EXACT_FILENAME_PATTERN
    filename_tokens: Tuple[str, ...] = FILENAME_TOKENS
    generic_filename_patterns: Tuple[re.Pattern, ...] = GENERIC_FILENAME_PATTERNS
    exact_filename_bonus: int = 20
    filename_token_bonus: int = 5
    filename_token_cap: int = 10
    generic_filename_penalty: int = -10

    correlation_exact_bonus: int = 20
    correlation_normalized_bonus: int = 15

    min_printable_run: int = 4
    magic: bytes = field(default=PDF_MAGIC)

    def with_threshold(self, threshold: int) -> "ScoringRules":
        """Copy of these rules with a different acceptance threshold."""
        return replace(self, acceptance_threshold=threshold)


DEFAULT_RULES = ScoringRules()
