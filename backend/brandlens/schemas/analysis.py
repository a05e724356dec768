"""
Prompt & Analysis Job Schemas
"""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from brandlens.models import JobPhase, SentimentPolarity, TrendDirection
from .serp import SearchResultItem


class PromptCreate(BaseModel):
    """Create a tracked prompt"""
    text: str = Field(..., min_length=1, max_length=2000)
    brand_name: str = Field(..., min_length=1, max_length=255)
    brand_domain: Optional[str] = None
    competitors: List[str] = Field(default_factory=list)
    country: str = "us"
    category: Optional[str] = None


class PromptResponse(BaseModel):
    """Tracked prompt"""
    id: UUID
    user_id: UUID
    text: str
    brand_name: str
    brand_domain: Optional[str]
    competitors: List[str]
    country: Optional[str]
    category: Optional[str]
    visibility_score: Optional[float]
    competitor_scores: Optional[Dict[str, float]] = None
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class JobSubmit(BaseModel):
    """Submit a prompt for analysis by one engine"""
    prompt_id: Optional[UUID] = None
    model: str = "ChatGPT"
    persona: str = "general"
    run_inline: bool = False


class AnalyzePromptRequest(BaseModel):
    """Fan a prompt out to several engines"""
    engines: Optional[List[str]] = None
    persona: str = "general"
    run_inline: bool = False


class JobResponse(BaseModel):
    """Analysis job record"""
    id: UUID
    user_id: UUID
    prompt_id: UUID
    model: str
    persona: Optional[str]
    phase: JobPhase
    brand_mentioned: Optional[bool]
    sentiment: Optional[SentimentPolarity]
    accuracy: Optional[float]
    reasoning: Optional[str]
    visibility_score: Optional[float]
    created_at: datetime
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


class JobStats(BaseModel):
    """Win/loss summary of an owner's jobs"""
    total: int
    wins: int
    losses: int
    in_progress: int
    failed: int


class PromptResultResponse(BaseModel):
    """Immutable result of a completed job"""
    id: UUID
    prompt_id: UUID
    job_id: Optional[UUID]
    model: str
    brand_mentioned: bool
    sentiment: Optional[SentimentPolarity]
    rank: Optional[int]
    visibility_score: float
    response_snippet: Optional[str]
    citations: List[SearchResultItem]
    competitors_mentioned: List[str]
    recommendations: List[str]
    created_at: datetime

    class Config:
        from_attributes = True


class VisibilityTrendResponse(BaseModel):
    """Visibility movement of a prompt over a window"""
    prompt_id: UUID
    window_days: int
    data_points: int
    first_score: Optional[float]
    current_score: Optional[float]
    delta: float
    direction: TrendDirection
