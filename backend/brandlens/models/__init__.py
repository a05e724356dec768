"""
Database Models for brandlens
"""

from .database import (
    Base,
    JSONType,
    # Enums
    JobPhase,
    SentimentPolarity,
    VerificationStatus,
    TrendDirection,
    AlertType,
    # Models
    Prompt,
    AnalysisJob,
    PromptResult,
    URLCitation,
    VisibilityHistory,
    SerpHistory,
    TrustSnapshot,
    TrustTrend,
    EngineCorrelation,
    NotificationSetting,
    Alert,
)

__all__ = [
    "Base",
    "JSONType",
    "JobPhase",
    "SentimentPolarity",
    "VerificationStatus",
    "TrendDirection",
    "AlertType",
    "Prompt",
    "AnalysisJob",
    "PromptResult",
    "URLCitation",
    "VisibilityHistory",
    "SerpHistory",
    "TrustSnapshot",
    "TrustTrend",
    "EngineCorrelation",
    "NotificationSetting",
    "Alert",
]
