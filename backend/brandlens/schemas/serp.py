"""
Search Results Schemas
Tagged structures for SERP snapshots
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class SearchResultItem(BaseModel):
    """A single organic result or cited source"""
    title: str = ""
    url: str
    snippet: Optional[str] = None
    position: int = Field(..., ge=1)


class CompetitorPosition(BaseModel):
    """Where a competitor appears in the results"""
    name: str
    position: int = Field(..., ge=1)


class SerpSnapshot(BaseModel):
    """Search results standing for a brand at one point in time"""
    query: str
    brand_in_results: bool = False
    position: Optional[int] = None
    ai_overview: Optional[str] = None
    top_results: List[SearchResultItem] = Field(default_factory=list)
    competitor_positions: List[CompetitorPosition] = Field(default_factory=list)
