"""
Content Validator: Confidence Scoring for Candidate Notice PDFs

validate() is a pure function: bytes (plus an optional filename and
correlation key) in, ValidationResult out. No I/O, no clock, no globals
beyond the immutable rule tables, so calling it twice on the same input
always yields the same verdict.

Scoring stages:
1. Magic signature fast-reject (nothing else is scored)
2. Size band
3. Text extraction (pypdf text layer, then printable scan)
4. Critical / supporting phrases
5. Markup / navigation penalties
6. Filename shape
7. Correlation key
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple
import os
import re

from .rules import ScoringRules, DEFAULT_RULES
from .text_extract import extract_text


@dataclass(frozen=True)
class RuleContribution:
    """One scoring rule that fired and the weight it added (or removed)."""
    rule: str
    weight: int

    def to_dict(self) -> Dict[str, Any]:
        return {"rule": self.rule, "weight": self.weight}


@dataclass(frozen=True)
class ValidationResult:
    """
    Verdict for one candidate.

    Attributes:
        is_valid: True if the score reached the acceptance threshold
        score: Sum of all rule contributions
        rule_contributions: Every rule that fired, in evaluation order
        rejection_reason: Why the candidate was rejected (None when valid)
        critical_matches: Critical phrases found in the text
        negative_matches: Markup/navigation phrases found in the text
        extraction_method: How the text was recovered
        threshold: Threshold the score was compared against
    """
    is_valid: bool
    score: int
    rule_contributions: Tuple[RuleContribution, ...] = ()
    rejection_reason: Optional[str] = None
    critical_matches: Tuple[str, ...] = ()
    negative_matches: Tuple[str, ...] = ()
    extraction_method: str = "none"
    threshold: int = DEFAULT_RULES.acceptance_threshold

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "is_valid": self.is_valid,
            "score": self.score,
            "rule_contributions": [c.to_dict() for c in self.rule_contributions],
            "rejection_reason": self.rejection_reason,
            "critical_matches": list(self.critical_matches),
            "negative_matches": list(self.negative_matches),
            "extraction_method": self.extraction_method,
            "threshold": self.threshold,
        }


@lru_cache(maxsize=256)
def _phrase_pattern(phrase: str) -> re.Pattern:
    return re.compile(r"(?<![a-z0-9])" + re.escape(phrase) + r"(?![a-z0-9])")


def _find_phrases(text: str, phrases: Tuple[str, ...]) -> List[str]:
    return [p for p in phrases if _phrase_pattern(p).search(text)]


def _size_contribution(size: int, rules: ScoringRules) -> Optional[RuleContribution]:
    lo, hi = rules.narrow_size_range
    if lo <= size <= hi:
        return RuleContribution("size:narrow", rules.narrow_size_bonus)
    lo, hi = rules.wide_size_range
    if lo <= size <= hi:
        return RuleContribution("size:wide", rules.wide_size_bonus)
    if size > rules.gross_size_limit:
        return RuleContribution("size:oversized", rules.oversize_penalty)
    return None


def _filename_contributions(filename: str, rules: ScoringRules) -> List[RuleContribution]:
    name = os.path.basename(filename.strip())
    if not name:
        return []

    if rules.exact_filename_pattern.match(name):
        return [RuleContribution("filename:exact", rules.exact_filename_bonus)]

    contributions: List[RuleContribution] = []
    lowered = name.lower()
    token_total = 0
    for token in rules.filename_tokens:
        if token in lowered and token_total < rules.filename_token_cap:
            weight = min(rules.filename_token_bonus, rules.filename_token_cap - token_total)
            token_total += weight
            contributions.append(RuleContribution(f"filename:token:{token}", weight))

    if any(p.search(name) for p in rules.generic_filename_patterns):
        contributions.append(RuleContribution("filename:generic", rules.generic_filename_penalty))

    return contributions


def _correlation_contribution(
    text: str,
    correlation_key: str,
    rules: ScoringRules
) -> Optional[RuleContribution]:
    key = correlation_key.strip().lower()
    if not key:
        return None
    if key in text:
        return RuleContribution("correlation:exact", rules.correlation_exact_bonus)

    squashed_key = re.sub(r"[^a-z0-9]", "", key)
    if squashed_key and squashed_key in re.sub(r"[^a-z0-9]", "", text):
        return RuleContribution("correlation:normalized", rules.correlation_normalized_bonus)
    return None


def validate(
    data: bytes,
    filename: Optional[str] = None,
    correlation_key: Optional[str] = None,
    rules: ScoringRules = DEFAULT_RULES
) -> ValidationResult:
    """
    Score a candidate artifact against the notice signature.

    Args:
        data: Candidate bytes
        filename: Filename the candidate was found under, if any
        correlation_key: Record key expected to appear in the text (e.g. the EIN)
        rules: Scoring configuration

    Returns:
        ValidationResult with verdict, score and per-rule breakdown
    """
    threshold = rules.acceptance_threshold

    if not data or not data.startswith(rules.magic):
        return ValidationResult(
            is_valid=False,
            score=0,
            rejection_reason="missing PDF signature",
            threshold=threshold,
        )

    contributions: List[RuleContribution] = []

    size_rule = _size_contribution(len(data), rules)
    if size_rule:
        contributions.append(size_rule)

    text, method = extract_text(data, rules.min_printable_run)

    critical = _find_phrases(text, rules.critical_phrases)
    for phrase in critical:
        contributions.append(RuleContribution(f"critical:{phrase}", rules.critical_weight))

    supporting_total = 0
    for phrase in _find_phrases(text, rules.supporting_phrases):
        if supporting_total >= rules.supporting_cap:
            break
        weight = min(rules.supporting_weight, rules.supporting_cap - supporting_total)
        supporting_total += weight
        contributions.append(RuleContribution(f"supporting:{phrase}", weight))

    negative = _find_phrases(text, rules.negative_phrases)
    negative_total = 0
    for phrase in negative:
        if negative_total <= rules.negative_cap:
            break
        weight = max(rules.negative_weight, rules.negative_cap - negative_total)
        negative_total += weight
        contributions.append(RuleContribution(f"negative:{phrase}", weight))

    if filename:
        contributions.extend(_filename_contributions(filename, rules))

    if correlation_key:
        corr = _correlation_contribution(text, correlation_key, rules)
        if corr:
            contributions.append(corr)

    score = sum(c.weight for c in contributions)
    is_valid = score >= threshold

    reason = None
    if not is_valid:
        if not critical and negative:
            reason = f"looks like a captured web page (score {score} < {threshold})"
        elif not critical:
            reason = f"no notice wording found (score {score} < {threshold})"
        else:
            reason = f"score {score} below threshold {threshold}"

    return ValidationResult(
        is_valid=is_valid,
        score=score,
        rule_contributions=tuple(contributions),
        rejection_reason=reason,
        critical_matches=tuple(critical),
        negative_matches=tuple(negative),
        extraction_method=method,
        threshold=threshold,
    )
