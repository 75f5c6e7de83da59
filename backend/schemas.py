"""
Pydantic schemas for data validation.
Defines the request and response structures of the capture backend API.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class ValidateRequest(BaseModel):
    """Candidate bytes to score, base64 encoded."""
    content_b64: str
    filename: Optional[str] = None
    correlation_key: Optional[str] = None


class RuleContributionModel(BaseModel):
    rule: str
    weight: int


class ValidateResponse(BaseModel):
    """Validator verdict for one candidate."""
    is_valid: bool
    score: int
    threshold: int
    rule_contributions: List[RuleContributionModel] = []
    rejection_reason: Optional[str] = None
    critical_matches: List[str] = []
    negative_matches: List[str] = []
    extraction_method: str = "none"
    size_bytes: int = 0


class PdfDownloadTestRequest(BaseModel):
    """Diagnostic probe of a notice URL with every header profile."""
    url: str
    include_url_variations: bool = True
    referrer: Optional[str] = None
    cookie: Optional[str] = None
    cookies: Dict[str, str] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    user_agent: Optional[str] = None


class ProbeResultModel(BaseModel):
    method: str
    url: str
    success: bool
    details: str
    file_size: int = 0
    content_type: Optional[str] = None
    score: Optional[int] = None


class PdfDownloadTestResponse(BaseModel):
    """Per-profile results plus the success summary."""
    success: bool
    summary: str
    success_count: int
    total_count: int
    success_rate: float
    best_result: Optional[ProbeResultModel] = None
    results: List[ProbeResultModel] = []


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    selenium_available: bool
    scan_dirs: List[str] = []
    details: Dict[str, Any] = Field(default_factory=dict)
