"""
Validation Module: Content Scoring for Candidate Notices

Components:
- validate: Pure scorer returning a ValidationResult
- ScoringRules: Tunable weights, size bands and phrase dictionaries
- extract_text: Two-pass PDF text recovery used by the scorer
"""

from .rules import ScoringRules, DEFAULT_RULES, PDF_MAGIC
from .text_extract import extract_text, normalize_text
from .validator import validate, ValidationResult, RuleContribution

__all__ = [
    "ScoringRules",
    "DEFAULT_RULES",
    "PDF_MAGIC",
    "extract_text",
    "normalize_text",
    "validate",
    "ValidationResult",
    "RuleContribution",
]
