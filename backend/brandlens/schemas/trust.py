"""
Trust Aggregation Schemas
"""

from datetime import date
from typing import Dict, Optional

from pydantic import BaseModel

from brandlens.models import TrendDirection


class TrustSnapshotResponse(BaseModel):
    """Per-engine daily aggregate"""
    engine: str
    snapshot_date: date
    reliability_score: float
    citation_completeness: float
    freshness_index: float
    authority_weight: float
    query_volume: int
    success_rate: float

    class Config:
        from_attributes = True


class TrustTrendResponse(BaseModel):
    """Authority trend of an engine over a window"""
    engine: str
    window: str
    as_of: date
    authority_delta: float
    direction: TrendDirection
    reliability_delta: float
    volatility: float
    outage_count: int
    outage_minutes: int
    current_authority: float
    projected_authority: Optional[float]
    data_points: int

    class Config:
        from_attributes = True


class EngineCorrelationResponse(BaseModel):
    """Agreement between two engines"""
    engine_a: str
    engine_b: str
    period_start: date
    period_end: date
    correlation: float
    shared_queries: int
    disagreement_rate: float
    win_rate_a: float
    win_rate_b: float

    class Config:
        from_attributes = True


class TrustSummary(BaseModel):
    """Direction counts across engines for a window"""
    window: str
    improving: int
    declining: int
    stable: int
    directions: Dict[str, TrendDirection]
    statement: str
