"""
Response Parsing Adapters
"""

from .brand_matcher import BrandMatcher, BrandMatch, BrandConfig, EntityRanking
from .citation_extractor import CitationExtractor, ExtractedCitation, normalize_domain, clean_url
from .sentiment_analyzer import SentimentAnalyzer, SentimentResult

__all__ = [
    "BrandMatcher",
    "BrandMatch",
    "BrandConfig",
    "EntityRanking",
    "CitationExtractor",
    "ExtractedCitation",
    "normalize_domain",
    "clean_url",
    "SentimentAnalyzer",
    "SentimentResult",
]
