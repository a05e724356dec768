"""
Citation Ledger & Verification Schemas
"""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, HttpUrl

from brandlens.models import VerificationStatus


class VerifyCitationRequest(BaseModel):
    """Verify a claim against the page it cites"""
    url: HttpUrl
    claim: str = Field(..., min_length=1)
    content: Optional[str] = None  # use instead of fetching the page


class VerificationResponse(BaseModel):
    """Verification outcome"""
    url: str
    status: VerificationStatus
    trust_score: float
    similarity: float
    hallucination_risk: str
    reason: str


class URLCitationResponse(BaseModel):
    """A ledger entry"""
    id: UUID
    url: str
    domain: str
    citation_count: int
    engines: List[str]
    verification_status: VerificationStatus
    trust_score: Optional[float]
    first_seen_at: datetime
    last_seen_at: datetime

    class Config:
        from_attributes = True


class DomainHeatmapEntry(BaseModel):
    """Citations of a single domain"""
    domain: str
    citations: int
    url_count: int
    avg_trust_score: float
    engines: List[str]
    status_breakdown: Dict[str, int]

    class Config:
        from_attributes = True


class VerificationStats(BaseModel):
    """Ledger-wide verification totals"""
    total: int
    verified: int
    unverified: int
    hallucinated: int
    pending: int
    avg_trust_score: float

    class Config:
        from_attributes = True
